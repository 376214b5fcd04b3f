"""BACnet application services used by the inventory client.

Sub-modules provide encode/decode for the ReadProperty request and ACK
and the protocol error hierarchy raised by the client.
"""

__all__: list[str] = []

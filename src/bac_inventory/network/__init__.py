"""BACnet/IP addressing, discovery target ranges and the NPDU codec."""

"""BACnet/IP addressing and discovery target ranges."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any

BACNET_PORT = 0xBAC0
"""The BACnet/IP UDP port (47808)."""

LIMITED_BROADCAST = "255.255.255.255"


@dataclass(frozen=True, slots=True)
class BIPAddress:
    """6-octet BACnet/IP address: 4 bytes IP + 2 bytes port."""

    host: str
    port: int = BACNET_PORT

    def encode(self) -> bytes:
        """Encode to 6-byte wire format."""
        return ipaddress.IPv4Address(self.host).packed + self.port.to_bytes(2, "big")

    @classmethod
    def decode(cls, data: bytes | memoryview) -> BIPAddress:
        """Decode from 6-byte wire format."""
        if len(data) < 6:
            msg = f"BIPAddress data too short: need 6 bytes, got {len(data)}"
            raise ValueError(msg)
        host = f"{data[0]}.{data[1]}.{data[2]}.{data[3]}"
        port = int.from_bytes(data[4:6], "big")
        return cls(host=host, port=port)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"host": self.host, "port": self.port}

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class AddressScope:
    """The set of IPv4 addresses one discovery round targets.

    A scope names a network; broadcast requests go to its broadcast
    addresses and the unicast sweep visits each of its host addresses.
    """

    network: ipaddress.IPv4Network
    broadcast: bool = True
    """Send the broadcast-scope request."""

    sweep: bool = True
    """Send the unicast-scope request to every host address."""

    def hosts(self) -> list[str]:
        """Host addresses of the scope, in ascending order."""
        if self.network.num_addresses == 1:
            return [str(self.network.network_address)]
        return [str(h) for h in self.network.hosts()]

    def broadcast_addresses(self) -> list[str]:
        """Broadcast destinations, narrowest first.

        The directed broadcast of the scope itself, the broadcast of the
        enclosing /16 (switches in the field often restrict the narrower
        one), and the limited broadcast.  A single-host scope has none.
        """
        if self.network.prefixlen >= 31:
            return []
        candidates = [str(self.network.broadcast_address)]
        if self.network.prefixlen > 16:
            candidates.append(str(self.network.supernet(new_prefix=16).broadcast_address))
        candidates.append(LIMITED_BROADCAST)
        return list(dict.fromkeys(candidates))

    def __str__(self) -> str:
        return str(self.network)


def parse_scope(text: str, *, broadcast: bool = True, sweep: bool = True) -> AddressScope:
    """Parse a discovery target.

    Accepted forms::

        "192.168.1.0/24"   CIDR network
        "192.168.1.20"     single host (/32, no broadcast)
        "192.168.1"        three-octet subnet, treated as a /24

    :param text: CIDR, single host or three-octet subnet.
    :param broadcast: Whether broadcast requests are sent.
    :param sweep: Whether the unicast sweep is performed.
    :returns: The parsed :class:`AddressScope`.
    :raises ValueError: If *text* is not one of the accepted forms.
    """
    text = text.strip()
    if text.count(".") == 2 and "/" not in text:
        text = f"{text}.0/24"
    try:
        network = ipaddress.IPv4Network(text, strict=False)
    except ValueError as exc:
        msg = f"Invalid address scope {text!r}: {exc}"
        raise ValueError(msg) from exc
    return AddressScope(network=network, broadcast=broadcast, sweep=sweep)

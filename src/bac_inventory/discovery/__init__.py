"""Device discovery: the Who-Is/I-Am frame codec and its UDP transport.

Public API:

- :func:`encode_discovery_request` / :func:`try_decode_discovery_response`
  and :func:`encode_synthetic_iam_frame` -- the pure frame codec.
- :class:`DiscoveryTransport` -- broadcast, sweep and targeted resolve
  over asyncio datagram endpoints.
"""

from bac_inventory.discovery.frames import (
    DiscoveredDevice,
    DiscoveryScope,
    encode_discovery_request,
    encode_synthetic_iam_frame,
    try_decode_discovery_response,
)
from bac_inventory.discovery.transport import DiscoveryTransport

__all__ = [
    "DiscoveredDevice",
    "DiscoveryScope",
    "DiscoveryTransport",
    "encode_discovery_request",
    "encode_synthetic_iam_frame",
    "try_decode_discovery_response",
]

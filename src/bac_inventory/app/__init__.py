"""Protocol client used by the harvester.

Public API:

- :class:`PropertyReader` -- the read-one-property protocol the
  harvester depends on.
- :class:`BIPPropertyReader` -- an asyncio BACnet/IP implementation.
"""

from bac_inventory.app.reader import BIPPropertyReader, PropertyReader

__all__ = ["BIPPropertyReader", "PropertyReader"]

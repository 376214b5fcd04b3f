"""bac-inventory: BACnet/IP point discovery, harvest and catalog reconciliation."""

__version__ = "0.1.0"

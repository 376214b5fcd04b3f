"""BACnet/IP virtual link layer."""

"""Inventory pipeline exceptions.

Protocol-level failures live in :mod:`bac_inventory.services.errors`;
these cover the scan, reconciliation and catalog layers.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base exception for inventory pipeline errors."""


class ScanCancelledError(InventoryError):
    """The scan's cancel token fired before the operation finished."""


class ReconciliationInvariantError(InventoryError):
    """A reconciliation result put one synthetic point ID in two buckets.

    Indicates a defect in the diff logic, never a data problem, and is
    always raised rather than logged.
    """


class CatalogError(InventoryError):
    """The catalog store could not be read or a mutation could not be applied."""

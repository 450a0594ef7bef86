"""
Container inventory: inspection, self identity, eligible-container snapshots
and per-container backups.
"""

from inventory.models import ContainerRecord, InventorySnapshot
from inventory.builder import InventoryBuilder, is_eligible, read_inventory
from inventory.self_identity import SelfIdentity, resolve_self_identity

__all__ = [
    'ContainerRecord',
    'InventorySnapshot',
    'InventoryBuilder',
    'SelfIdentity',
    'is_eligible',
    'read_inventory',
    'resolve_self_identity',
]

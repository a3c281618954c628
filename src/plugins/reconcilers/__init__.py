"""
Reconciler plugins package.

Reconciler plugins own create/read/update/delete for one kind of vendor
object. They are discovered via Python entry points
(group: 'vendor_reconciler.reconcilers').
"""

from plugins.reconcilers.base import (
    ReconcilerPlugin,
    ReconcilerContext,
    ReconcileResult,
)
from plugins.reconcilers.cluster import ClusterReconciler, ClusterWaiter
from plugins.reconcilers.customer import CustomerReconciler

__all__ = [
    "ReconcilerPlugin",
    "ReconcilerContext",
    "ReconcileResult",
    "ClusterReconciler",
    "ClusterWaiter",
    "CustomerReconciler",
]

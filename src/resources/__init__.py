"""
Morpheus resource kinds.

Each kind instantiates the generic reconciler contract with its own schema
and field mapping. Kinds are discovered via Python entry points
(group: 'morpheus.resources').
"""

from resources.base import (
    AmbiguousLookup,
    ContractViolation,
    DriftResult,
    ReconcileError,
    ReconcilerContext,
    ResourceReconciler,
    ResourceState,
    ValidationFailed,
)
from resources.registry import ResourceRegistry, get_registry, register_builtin_resources

__all__ = [
    "AmbiguousLookup",
    "ContractViolation",
    "DriftResult",
    "ReconcileError",
    "ReconcilerContext",
    "ResourceReconciler",
    "ResourceState",
    "ValidationFailed",
    "ResourceRegistry",
    "get_registry",
    "register_builtin_resources",
]

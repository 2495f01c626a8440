"""
Controller - Plans and applies declared resources against Morpheus.

Compares a declarations file with the tracked state file, refreshes every
tracked resource from the appliance, and dispatches create, update and
delete calls to the resource reconcilers. Independent resources are
reconciled concurrently; each lifecycle call is sequential.
"""

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

from resources.base import ReconcileError, ReconcilerContext, ResourceState
from resources.registry import ResourceRegistry

logger = logging.getLogger(__name__)

# Declaration names: lowercase alphanumeric, '-' or '_', max 63 chars
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9_-]{0,61}[a-z0-9])?$")


def validate_name_format(value: str, field_name: str) -> str:
    """Validate that a declaration name is a usable state key."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must consist of lowercase alphanumeric characters, "
            f"'-' or '_', and must start and end with an alphanumeric character"
        )
    return value


class ResourceDeclaration(BaseModel):
    """One declared resource instance."""

    type: str = Field(..., description="Resource type name")
    name: str = Field(..., description="Unique name of this declaration")
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Desired attribute values"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_name_format(v, "name")


class DeclarationFile(BaseModel):
    """Top-level structure of a declarations file."""

    resources: List[ResourceDeclaration] = Field(default_factory=list)

    @field_validator("resources")
    @classmethod
    def validate_unique_names(
        cls, v: List[ResourceDeclaration]
    ) -> List[ResourceDeclaration]:
        seen = set()
        for declaration in v:
            if declaration.name in seen:
                raise ValueError(f"Duplicate resource name: {declaration.name}")
            seen.add(declaration.name)
        return v


def load_declarations(path: str) -> DeclarationFile:
    """Load a YAML or JSON declarations file."""
    with open(path, "r") as f:
        if path.endswith(".yaml") or path.endswith(".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    return DeclarationFile.model_validate(data or {})


@dataclass
class TrackedResource:
    """A resource recorded in the state file."""

    type_name: str
    state: ResourceState

    def to_dict(self) -> Dict[str, Any]:
        data = self.state.to_dict()
        data["type"] = self.type_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedResource":
        return cls(type_name=data["type"], state=ResourceState.from_dict(data))


class StateFile:
    """JSON file mapping declaration names to tracked resources."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Dict[str, TrackedResource]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r") as f:
            data = json.load(f)
        return {
            name: TrackedResource.from_dict(entry)
            for name, entry in data.get("resources", {}).items()
        }

    def save(self, tracked: Dict[str, TrackedResource]) -> None:
        data = {
            "version": 1,
            "resources": {
                name: tracked[name].to_dict() for name in sorted(tracked)
            },
        }
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(tracked)} resources to {self.path}")


class ChangeAction(Enum):
    """Planned action for one resource."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


@dataclass
class PlannedChange:
    """A single planned change."""

    name: str
    type_name: str
    action: ChangeAction
    changed_attributes: List[str] = field(default_factory=list)
    details: str = ""
    desired: Optional[Dict[str, Any]] = None
    prior: Optional[ResourceState] = None


@dataclass
class ApplyResult:
    """Outcome of applying one planned change."""

    name: str
    action: ChangeAction
    success: bool = False
    error_message: Optional[str] = None
    state: Optional[ResourceState] = None


class Controller:
    """
    Drives resource reconcilers from declarations and tracked state.

    Holds no state between calls: tracked resources are passed in and the
    updated map is returned.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        context: ReconcilerContext,
        max_concurrent_reconciles: int = 5,
    ):
        self.registry = registry
        self.context = context
        self.max_concurrent_reconciles = max_concurrent_reconciles

    async def refresh(
        self, tracked: Dict[str, TrackedResource]
    ) -> Dict[str, TrackedResource]:
        """
        Read every tracked resource from the appliance.

        Resources reported as not found are dropped from the returned map.
        """
        names = sorted(tracked)
        semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        refreshed = await asyncio.gather(
            *(self._refresh_one(name, tracked[name], semaphore) for name in names)
        )
        return {
            name: resource
            for name, resource in zip(names, refreshed)
            if resource is not None
        }

    async def _refresh_one(
        self, name: str, resource: TrackedResource, semaphore: asyncio.Semaphore
    ) -> Optional[TrackedResource]:
        async with semaphore:
            reconciler = self.registry.get(resource.type_name)
            state = await reconciler.read(resource.state, self.context)
            if state is None:
                logger.info(f"{name} no longer exists remotely")
                return None
            return TrackedResource(type_name=resource.type_name, state=state)

    async def plan(
        self,
        declarations: List[ResourceDeclaration],
        tracked: Dict[str, TrackedResource],
    ) -> Tuple[List[PlannedChange], Dict[str, TrackedResource]]:
        """
        Work out the changes needed to converge on the declarations.

        Returns:
            Tuple of (planned changes, refreshed tracked resources).

        Raises:
            ValueError: For unknown resource types.
            ValidationFailed: For invalid desired state.
        """
        # Reject invalid declarations before any remote call
        for declaration in declarations:
            reconciler = self.registry.get(declaration.type)
            reconciler.validate(reconciler.schema.with_defaults(declaration.attributes))

        current = await self.refresh(tracked)
        changes: List[PlannedChange] = []
        declared = {d.name for d in declarations}

        for name in sorted(set(current) - declared):
            changes.append(
                PlannedChange(
                    name=name,
                    type_name=current[name].type_name,
                    action=ChangeAction.DELETE,
                    prior=current[name].state,
                )
            )

        for declaration in declarations:
            existing = current.get(declaration.name)
            if existing is not None and existing.type_name != declaration.type:
                changes.append(
                    PlannedChange(
                        name=declaration.name,
                        type_name=existing.type_name,
                        action=ChangeAction.DELETE,
                        prior=existing.state,
                    )
                )
                existing = None

            reconciler = self.registry.get(declaration.type)
            drift = reconciler.diff(
                existing.state if existing else None, declaration.attributes
            )
            if existing is None:
                action = ChangeAction.CREATE
            elif drift.has_drift:
                action = ChangeAction.UPDATE
            else:
                action = ChangeAction.NOOP

            changes.append(
                PlannedChange(
                    name=declaration.name,
                    type_name=declaration.type,
                    action=action,
                    changed_attributes=drift.changed_attributes,
                    details=drift.drift_details,
                    desired=declaration.attributes,
                    prior=existing.state if existing else None,
                )
            )

        return changes, current

    async def apply(
        self,
        declarations: List[ResourceDeclaration],
        tracked: Dict[str, TrackedResource],
    ) -> Tuple[Dict[str, TrackedResource], List[ApplyResult]]:
        """
        Plan and execute every change.

        Deletes run before creates and updates so renamed or retyped
        declarations do not collide. A failed change leaves its prior
        tracked state in place.

        Returns:
            Tuple of (new tracked resources, per-change results).
        """
        changes, current = await self.plan(declarations, tracked)
        return await self.execute(changes, current)

    async def execute(
        self,
        changes: List[PlannedChange],
        current: Dict[str, TrackedResource],
    ) -> Tuple[Dict[str, TrackedResource], List[ApplyResult]]:
        """Execute a previously computed plan."""
        result_tracked = dict(current)
        results: List[ApplyResult] = []

        deletes = [c for c in changes if c.action == ChangeAction.DELETE]
        others = [c for c in changes if c.action != ChangeAction.DELETE]

        # Semaphores bind to the running loop, so one is created per call
        semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        for batch in (deletes, others):
            batch_results = await asyncio.gather(
                *(self._execute_one(c, semaphore) for c in batch)
            )
            for change, result in zip(batch, batch_results):
                results.append(result)
                if not result.success:
                    continue
                if change.action == ChangeAction.DELETE:
                    result_tracked.pop(change.name, None)
                elif result.state is not None:
                    result_tracked[change.name] = TrackedResource(
                        type_name=change.type_name, state=result.state
                    )

        return result_tracked, results

    async def _execute_one(
        self, change: PlannedChange, semaphore: asyncio.Semaphore
    ) -> ApplyResult:
        result = ApplyResult(name=change.name, action=change.action)
        if change.action == ChangeAction.NOOP:
            result.success = True
            result.state = change.prior
            return result

        async with semaphore:
            reconciler = self.registry.get(change.type_name)
            try:
                if change.action == ChangeAction.CREATE:
                    result.state = await reconciler.create(change.desired, self.context)
                elif change.action == ChangeAction.UPDATE:
                    result.state = await reconciler.update(
                        change.prior, change.desired, self.context
                    )
                else:
                    await reconciler.delete(change.prior, self.context)
                result.success = True
                logger.info(f"{change.action.value} {change.name}: done")
            except Exception as e:
                logger.error(f"{change.action.value} {change.name} failed: {e}")
                result.error_message = str(e)

        return result

    async def destroy(
        self, tracked: Dict[str, TrackedResource]
    ) -> Tuple[Dict[str, TrackedResource], List[ApplyResult]]:
        """Delete every tracked resource."""
        changes = [
            PlannedChange(
                name=name,
                type_name=resource.type_name,
                action=ChangeAction.DELETE,
                prior=resource.state,
            )
            for name, resource in sorted(tracked.items())
        ]
        return await self.execute(changes, tracked)

    async def import_resource(
        self, type_name: str, name: str, identifier: str
    ) -> TrackedResource:
        """
        Seed a tracked resource from an existing remote entity.

        Raises:
            ReconcileError: If no entity with that identifier exists.
        """
        validate_name_format(name, "name")
        reconciler = self.registry.get(type_name)
        state = await reconciler.import_state(identifier, self.context)
        if state is None:
            raise ReconcileError(
                f"Cannot import non-existent remote object {type_name} {identifier}"
            )
        logger.info(f"Imported {type_name} {identifier} as {name}")
        return TrackedResource(type_name=type_name, state=state)

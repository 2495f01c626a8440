"""
Resource Reconciler Base - Generic lifecycle contract for Morpheus resources.

Every resource kind maps a desired-state attribute set onto Morpheus API
calls and maps the remote entity back into observed state. Subclasses only
declare their schema, endpoint and field mapping; create, read, update,
delete and import are implemented here once.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from client import APIError, FilePayload, MorpheusClient
from resources.schema import ResourceSchema
from validation import check_exclusive_groups, is_set, validate_desired_state

logger = logging.getLogger(__name__)

SENSITIVE_PLACEHOLDER = "(sensitive value)"


class ReconcileError(Exception):
    """Raised when a lifecycle call cannot complete."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ContractViolation(ReconcileError):
    """The caller did not provide the identifying input a call requires."""


class ValidationFailed(ReconcileError):
    """Desired state violates the resource's static constraints."""


class AmbiguousLookup(ReconcileError):
    """A name lookup matched more than one remote entity."""


@dataclass
class ResourceState:
    """Identifier and attribute values of one resource instance."""

    id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "attributes": dict(self.attributes)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceState":
        return cls(id=data.get("id"), attributes=dict(data.get("attributes") or {}))


@dataclass
class DriftResult:
    """Result from comparing desired state with observed state."""

    has_drift: bool = False
    drift_details: str = ""
    changed_attributes: List[str] = field(default_factory=list)


@dataclass
class ReconcilerContext:
    """
    Context passed to every lifecycle call.

    Carries the API client explicitly so reconcilers hold no shared state,
    along with the not-found policy applied on delete ('ignore' treats a
    missing entity as already deleted, 'error' surfaces it).
    """

    client: MorpheusClient
    delete_not_found: str = "ignore"


class ResourceReconciler(ABC):
    """
    Abstract base class for resource reconcilers.

    Subclasses set ``api_path`` (collection endpoint), ``object_key`` (the
    wrapper key of a single entity) and ``list_key`` (the wrapper key of a
    collection response), and implement the field mapping.
    """

    api_path: str = ""
    object_key: str = ""
    list_key: str = ""

    @property
    @abstractmethod
    def type_name(self) -> str:
        """Unique resource type name (e.g., 'morpheus_helm_spec_template')."""
        pass

    @property
    @abstractmethod
    def schema(self) -> ResourceSchema:
        """Attribute descriptor of this resource kind."""
        pass

    @abstractmethod
    def build_payload(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        """
        Translate desired state into the full request body.

        Args:
            desired: Validated desired state with defaults applied.

        Returns:
            The JSON body sent on create and update.
        """
        pass

    @abstractmethod
    def flatten(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        """
        Translate a remote entity into observed attribute values.

        Args:
            entity: The unwrapped entity returned by the API.

        Returns:
            Attribute values keyed by attribute name.
        """
        pass

    def attachments(
        self, desired: Dict[str, Any], prior: Optional[Dict[str, Any]]
    ) -> List[FilePayload]:
        """
        Files to upload after the primary write.

        Args:
            desired: Validated desired state.
            prior: Last observed attributes, or None on create.

        Returns:
            File payloads to upload; empty when nothing changed.
        """
        return []

    def attachment_path(self, resource_id: str) -> str:
        """Upload endpoint for attachments of an existing entity."""
        raise NotImplementedError(f"{self.type_name} does not accept attachments")

    def object_path(self, resource_id: str) -> str:
        return f"{self.api_path}/{resource_id}"

    # Validation and drift

    def validate(self, desired: Dict[str, Any]) -> None:
        """
        Check desired state against the static constraints of the schema.

        Raises:
            ValidationFailed: On type, enum, required, variant or
                exclusive-group violations.
        """
        is_valid, error = validate_desired_state(desired, self.schema.to_json_schema())
        if not is_valid:
            raise ValidationFailed(f"{self.type_name}: {error}")

        for group in self.schema.exclusive_groups:
            is_valid, error = check_exclusive_groups(
                desired, group.groups, group.required
            )
            if not is_valid:
                raise ValidationFailed(f"{self.type_name}: {error}")

    def diff(
        self, state: Optional[ResourceState], desired: Dict[str, Any]
    ) -> DriftResult:
        """
        Compare desired state with the last observed state.

        Args:
            state: Observed state, or None when the resource is absent.
            desired: The user-declared attribute values.

        Returns:
            DriftResult listing drifted attributes.
        """
        desired = self.schema.with_defaults(desired)

        if state is None or not state.id:
            return DriftResult(
                has_drift=True,
                drift_details="Resource does not exist",
                changed_attributes=sorted(desired),
            )

        changed = self.schema.diff(state.attributes, desired)
        if not changed:
            return DriftResult()

        details = []
        for name in changed:
            if self.schema.get(name).sensitive:
                details.append(f"{name}: {SENSITIVE_PLACEHOLDER}")
            else:
                details.append(
                    f"{name}: {state.attributes.get(name)!r} -> {desired.get(name)!r}"
                )
        return DriftResult(
            has_drift=True,
            drift_details="\n".join(details),
            changed_attributes=changed,
        )

    # Lifecycle

    async def create(
        self, desired: Dict[str, Any], ctx: ReconcilerContext
    ) -> ResourceState:
        """
        Create the remote entity and return its normalized observed state.

        Attachment upload failures are logged and do not fail the create.

        Raises:
            ValidationFailed: Before any remote call when desired state is invalid.
            ReconcileError: If an attachment file cannot be read.
            APIError: If the remote create fails.
        """
        desired = self.schema.with_defaults(desired)
        self.validate(desired)
        files = self.attachments(desired, None)

        resource_id = await self._create_remote(self.build_payload(desired), ctx)
        logger.info(f"Created {self.type_name} {resource_id}")

        await self._upload_attachments(resource_id, files, ctx)

        state = await self.read(ResourceState(id=resource_id, attributes=desired), ctx)
        if state is None:
            raise ReconcileError(
                f"{self.type_name} {resource_id} was not found after create"
            )
        return state

    async def read(
        self, state: ResourceState, ctx: ReconcilerContext
    ) -> Optional[ResourceState]:
        """
        Refresh observed state by identifier, or by name when no identifier
        is known.

        Returns:
            The observed state, or None when the entity no longer exists.

        Raises:
            ContractViolation: If neither identifier nor name is available.
            AmbiguousLookup: If a name lookup matches several entities.
            APIError: For any remote failure other than not-found.
        """
        name = state.attributes.get("name")
        try:
            if state.id:
                entity = await self._fetch(state.id, ctx)
            elif name:
                entity = await self._find_by_name(name, ctx)
                if entity is None:
                    logger.warning(f"No {self.type_name} named '{name}' exists")
                    return None
            else:
                raise ContractViolation(
                    f"{self.type_name} cannot be read without name or id"
                )
        except APIError as e:
            if e.not_found:
                logger.warning(
                    f"{self.type_name} {state.id or name} no longer exists, "
                    f"forcing recreation"
                )
                return None
            raise

        return self._observe(entity, state.attributes)

    async def update(
        self, state: ResourceState, desired: Dict[str, Any], ctx: ReconcilerContext
    ) -> ResourceState:
        """
        Replace the remote entity with the full desired payload.

        Attachments are re-uploaded only when their path or file name
        differs from the last observed state.

        Raises:
            ContractViolation: If the state has no identifier.
            ValidationFailed: Before any remote call when desired state is invalid.
            APIError: If the remote update fails.
        """
        if not state.id:
            raise ContractViolation(f"{self.type_name} cannot be updated without id")

        desired = self.schema.with_defaults(desired)
        self.validate(desired)
        files = self.attachments(desired, state.attributes)

        await self._update_remote(state.id, self.build_payload(desired), ctx)
        logger.info(f"Updated {self.type_name} {state.id}")

        await self._upload_attachments(state.id, files, ctx)

        refreshed = await self.read(ResourceState(id=state.id, attributes=desired), ctx)
        if refreshed is None:
            raise ReconcileError(
                f"{self.type_name} {state.id} was not found after update"
            )
        return refreshed

    async def delete(self, state: ResourceState, ctx: ReconcilerContext) -> None:
        """
        Delete the remote entity.

        Raises:
            ContractViolation: If the state has no identifier.
            APIError: For remote failures, and for not-found when the
                context's delete policy is 'error'.
        """
        if not state.id:
            raise ContractViolation(f"{self.type_name} cannot be deleted without id")

        try:
            await ctx.client.delete(self.object_path(state.id))
        except APIError as e:
            if e.not_found and ctx.delete_not_found == "ignore":
                logger.warning(f"{self.type_name} {state.id} was already deleted")
                return
            raise
        logger.info(f"Deleted {self.type_name} {state.id}")

    async def import_state(
        self, identifier: str, ctx: ReconcilerContext
    ) -> Optional[ResourceState]:
        """
        Seed state from an external identifier and read it.

        Returns:
            The observed state, or None if no such entity exists.
        """
        if not identifier or not str(identifier).strip():
            raise ContractViolation(f"{self.type_name} import requires an id")
        return await self.read(ResourceState(id=str(identifier).strip()), ctx)

    # Remote helpers

    def _unwrap(self, body: Dict[str, Any]) -> Dict[str, Any]:
        entity = body.get(self.object_key)
        if not isinstance(entity, dict):
            raise ReconcileError(
                f"Response for {self.type_name} is missing '{self.object_key}'"
            )
        return entity

    def _observe(
        self, entity: Dict[str, Any], prior: Dict[str, Any]
    ) -> ResourceState:
        attributes = self.schema.normalize(self.flatten(entity))
        for attr in self.schema.attributes:
            if attr.local_only:
                attributes[attr.name] = prior.get(attr.name)
        return ResourceState(id=str(entity["id"]), attributes=attributes)

    async def _fetch(self, resource_id: str, ctx: ReconcilerContext) -> Dict[str, Any]:
        response = await ctx.client.get(self.object_path(resource_id))
        return self._unwrap(response.body)

    async def _find_by_name(
        self, name: str, ctx: ReconcilerContext
    ) -> Optional[Dict[str, Any]]:
        response = await ctx.client.get(self.api_path, params={"name": name})
        candidates = response.body.get(self.list_key) or []
        matches = [c for c in candidates if c.get("name") == name]

        if not matches:
            return None
        if len(matches) > 1:
            ids = ", ".join(str(m.get("id")) for m in matches)
            raise AmbiguousLookup(
                f"{len(matches)} {self.type_name} entities are named '{name}' "
                f"(ids: {ids}); import one by id instead"
            )
        return await self._fetch(str(matches[0]["id"]), ctx)

    async def _create_remote(
        self, payload: Dict[str, Any], ctx: ReconcilerContext
    ) -> str:
        response = await ctx.client.post(self.api_path, payload)
        entity = self._unwrap(response.body)
        if entity.get("id") is None:
            raise ReconcileError(f"Create response for {self.type_name} has no id")
        return str(entity["id"])

    async def _update_remote(
        self, resource_id: str, payload: Dict[str, Any], ctx: ReconcilerContext
    ) -> None:
        await ctx.client.put(self.object_path(resource_id), payload)

    async def _upload_attachments(
        self, resource_id: str, files: List[FilePayload], ctx: ReconcilerContext
    ) -> None:
        if not files:
            return
        try:
            await ctx.client.upload_files(self.attachment_path(resource_id), files)
            logger.info(
                f"Uploaded {len(files)} attachment(s) for {self.type_name} {resource_id}"
            )
        except APIError as e:
            # Upload failures never roll back the primary write
            logger.warning(
                f"Attachment upload for {self.type_name} {resource_id} failed: {e}"
            )


def read_attachment(parameter_name: str, path: str, file_name: str) -> FilePayload:
    """
    Load a local file for upload.

    Raises:
        ReconcileError: If the file cannot be read.
    """
    try:
        with open(path, "rb") as f:
            content = f.read()
    except OSError as e:
        raise ReconcileError(f"Cannot read {parameter_name} file {path}: {e}", e) from e
    return FilePayload(parameter_name=parameter_name, file_name=file_name, content=content)


def compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is unset so the server keeps its own default."""
    return {k: v for k, v in values.items() if is_set(v) or isinstance(v, list)}

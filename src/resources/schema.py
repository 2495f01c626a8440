"""
Resource Schema - Attribute descriptors for Morpheus resource kinds.

Each resource kind declares its attributes once. The descriptor drives
desired-state validation (rendered as a Draft 7 JSON Schema), defaults,
observed-state normalization and drift detection.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from validation import is_set

# JSON Schema type keyword for each attribute type
ATTRIBUTE_TYPES = {
    "string": "string",
    "integer": "integer",
    "boolean": "boolean",
    "list": "array",
    "set": "array",
}


def trim_trailing_newline(value: Any) -> Any:
    """Drop a single trailing newline from string values."""
    if isinstance(value, str) and value.endswith("\n"):
        return value[:-1]
    return value


def sha256_hex(value: str) -> str:
    """Hex encoded SHA-256 digest of a string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hashed_secret_matches(old: Any, new: Any) -> bool:
    """
    Diff suppressor for secrets the server only returns as a digest.

    Args:
        old: The stored SHA-256 hex digest from observed state.
        new: The plaintext from desired state.

    Returns:
        True when the plaintext hashes to the stored digest.
    """
    if not isinstance(old, str) or not isinstance(new, str):
        return False
    return sha256_hex(new).lower() == old.lower()


@dataclass(frozen=True)
class Attribute:
    """A single typed attribute of a resource descriptor."""

    name: str
    type: str
    description: str = ""
    required: bool = False
    optional: bool = False
    computed: bool = False
    default: Any = None
    enum: Optional[Tuple[str, ...]] = None
    elem: str = "string"
    sensitive: bool = False
    # Only known locally; carried over from prior state on read
    local_only: bool = False
    normalize: Optional[Callable[[Any], Any]] = None
    diff_suppress: Optional[Callable[[Any, Any], bool]] = None

    def __post_init__(self):
        if self.type not in ATTRIBUTE_TYPES:
            raise ValueError(f"Unknown attribute type '{self.type}' for {self.name}")
        if self.required and (self.optional or self.computed):
            raise ValueError(
                f"Attribute '{self.name}' cannot be required and "
                f"optional or computed at the same time"
            )
        if not (self.required or self.optional or self.computed):
            raise ValueError(
                f"Attribute '{self.name}' must be required, optional or computed"
            )

    @property
    def user_settable(self) -> bool:
        return self.required or self.optional

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": ATTRIBUTE_TYPES[self.type]}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type in ("list", "set"):
            schema["items"] = {"type": ATTRIBUTE_TYPES[self.elem]}
            if self.type == "set":
                schema["uniqueItems"] = True
        return schema

    def normalized(self, value: Any) -> Any:
        if value is None:
            return None
        if self.normalize is not None:
            value = self.normalize(value)
        if self.type == "set":
            return sorted(value)
        if self.type == "list":
            return list(value)
        return value

    def differs(self, old: Any, new: Any) -> bool:
        """Whether a desired value registers as drift against an observed one."""
        if not is_set(old) and not is_set(new):
            return False
        changed = self.normalized(old) != self.normalized(new)
        if changed and self.diff_suppress is not None:
            return not self.diff_suppress(old, new)
        return changed


@dataclass(frozen=True)
class ExclusiveGroups:
    """Mutually exclusive attribute groups (exactly one when required)."""

    groups: Tuple[Tuple[str, ...], ...]
    required: bool = False


@dataclass(frozen=True)
class Variant:
    """Attributes a discriminator value makes mandatory or forbids."""

    discriminator: str
    value: str
    requires: Tuple[str, ...]
    forbids: Tuple[str, ...] = ()

    def then_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"required": list(self.requires)}
        if self.forbids:
            schema["properties"] = {name: False for name in self.forbids}
        return schema


@dataclass
class ResourceSchema:
    """The full attribute descriptor of one resource kind."""

    attributes: List[Attribute]
    exclusive_groups: List[ExclusiveGroups] = field(default_factory=list)
    variants: List[Variant] = field(default_factory=list)

    def __post_init__(self):
        self._by_name: Dict[str, Attribute] = {}
        for attr in self.attributes:
            if attr.name in self._by_name:
                raise ValueError(f"Duplicate attribute: {attr.name}")
            self._by_name[attr.name] = attr

        referenced = [a for eg in self.exclusive_groups for g in eg.groups for a in g]
        for variant in self.variants:
            referenced.append(variant.discriminator)
            referenced.extend(variant.requires)
            referenced.extend(variant.forbids)
        unknown = sorted({a for a in referenced if a not in self._by_name})
        if unknown:
            raise ValueError(f"Unknown attributes referenced: {', '.join(unknown)}")

    def get(self, name: str) -> Attribute:
        return self._by_name[name]

    def user_attributes(self) -> List[Attribute]:
        return [a for a in self.attributes if a.user_settable]

    def computed_attributes(self) -> List[Attribute]:
        return [a for a in self.attributes if a.computed]

    def to_json_schema(self) -> Dict[str, Any]:
        """Render the user-settable attributes as a Draft 7 JSON Schema."""
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {a.name: a.to_json_schema() for a in self.user_attributes()},
            "required": [a.name for a in self.attributes if a.required],
            "additionalProperties": False,
        }
        if self.variants:
            schema["allOf"] = [
                {
                    "if": {
                        "properties": {v.discriminator: {"const": v.value}},
                        "required": [v.discriminator],
                    },
                    "then": v.then_schema(),
                }
                for v in self.variants
            ]
        return schema

    def with_defaults(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        """Drop unset values and fill in declared defaults."""
        result = {k: v for k, v in desired.items() if v is not None}
        for attr in self.user_attributes():
            if attr.name not in result and attr.default is not None:
                result[attr.name] = attr.default
        return result

    def normalize(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply per-attribute normalization to observed values."""
        result = {}
        for name, value in attributes.items():
            attr = self._by_name.get(name)
            result[name] = attr.normalized(value) if attr else value
        return result

    def diff(self, observed: Dict[str, Any], desired: Dict[str, Any]) -> List[str]:
        """
        List user-settable attributes whose desired value drifts from observed.

        Optional attributes the server may compute are ignored while unset.
        """
        desired = self.with_defaults(desired)
        changed = []
        for attr in self.user_attributes():
            new = desired.get(attr.name)
            if not is_set(new) and attr.computed:
                continue
            if attr.differs(observed.get(attr.name), new):
                changed.append(attr.name)
        return changed

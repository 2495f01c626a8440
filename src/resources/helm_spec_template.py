"""
Helm spec template resource.

The template source is a tagged union selected by ``source_type``: inline
content (local), a URL, or a path inside a git repository integration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from resources.base import ResourceReconciler, compact
from resources.schema import Attribute, ResourceSchema, Variant, trim_trailing_newline

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("local", "url", "repository")


@dataclass(frozen=True)
class LocalSource:
    content: str


@dataclass(frozen=True)
class UrlSource:
    path: str


@dataclass(frozen=True)
class RepositorySource:
    path: str
    repository_id: int
    ref: Optional[str] = None


SpecSource = Union[LocalSource, UrlSource, RepositorySource]


def source_from_attributes(attributes: Dict[str, Any]) -> SpecSource:
    """Build the source variant selected by the ``source_type`` attribute."""
    source_type = attributes.get("source_type")
    if source_type == "local":
        return LocalSource(content=attributes["spec_content"])
    if source_type == "url":
        return UrlSource(path=attributes["spec_path"])
    if source_type == "repository":
        return RepositorySource(
            path=attributes["spec_path"],
            repository_id=attributes["repository_id"],
            ref=attributes.get("version_ref"),
        )
    raise ValueError(f"Unknown source type: {source_type}")


def source_to_file(source: SpecSource) -> Dict[str, Any]:
    """Render a source variant as the API 'file' object."""
    if isinstance(source, LocalSource):
        return {"sourceType": "local", "content": source.content}
    if isinstance(source, UrlSource):
        return {"sourceType": "url", "contentPath": source.path}
    if isinstance(source, RepositorySource):
        return compact(
            {
                "sourceType": "repository",
                "contentPath": source.path,
                "contentRef": source.ref,
                "repository": {"id": source.repository_id},
            }
        )
    raise TypeError(f"Unsupported source: {source!r}")


def source_from_file(file: Dict[str, Any]) -> Optional[SpecSource]:
    """Parse the API 'file' object; the API reports repository sources as 'git'."""
    source_type = file.get("sourceType")
    if source_type == "local":
        return LocalSource(content=file.get("content") or "")
    if source_type == "url":
        return UrlSource(path=file.get("contentPath") or "")
    if source_type in ("git", "repository"):
        repository = file.get("repository") or {}
        return RepositorySource(
            path=file.get("contentPath") or "",
            repository_id=repository.get("id"),
            ref=file.get("contentRef"),
        )
    logger.warning(f"Unrecognized spec template source type: {source_type}")
    return None


def source_to_attributes(source: Optional[SpecSource]) -> Dict[str, Any]:
    """Flatten a source variant into the attributes it populates."""
    if isinstance(source, LocalSource):
        return {"source_type": "local", "spec_content": source.content}
    if isinstance(source, UrlSource):
        return {"source_type": "url", "spec_path": source.path}
    if isinstance(source, RepositorySource):
        return {
            "source_type": "repository",
            "spec_path": source.path,
            "repository_id": source.repository_id,
            "version_ref": source.ref,
        }
    return {}


class HelmSpecTemplate(ResourceReconciler):
    """Morpheus helm spec template."""

    api_path = "/api/library/spec-templates"
    object_key = "specTemplate"
    list_key = "specTemplates"

    SCHEMA = ResourceSchema(
        attributes=[
            Attribute(
                "name", "string", "The name of the helm spec template", required=True
            ),
            Attribute(
                "source_type",
                "string",
                "The source of the helm spec template (local, url or repository)",
                required=True,
                enum=SOURCE_TYPES,
            ),
            Attribute(
                "spec_content",
                "string",
                "The content of the helm spec template, used with the local source type",
                optional=True,
                normalize=trim_trailing_newline,
            ),
            Attribute(
                "spec_path",
                "string",
                "The url, or the path in the repository, of the helm spec template",
                optional=True,
            ),
            Attribute(
                "repository_id",
                "integer",
                "The ID of the git repository integration",
                optional=True,
            ),
            Attribute(
                "version_ref",
                "string",
                "The git reference of the repository to pull (main, master, etc.)",
                optional=True,
            ),
        ],
        variants=[
            Variant(
                "source_type",
                "local",
                requires=("spec_content",),
                forbids=("spec_path", "repository_id", "version_ref"),
            ),
            Variant(
                "source_type",
                "url",
                requires=("spec_path",),
                forbids=("spec_content", "repository_id", "version_ref"),
            ),
            Variant(
                "source_type",
                "repository",
                requires=("spec_path", "repository_id"),
                forbids=("spec_content",),
            ),
        ],
    )

    @property
    def type_name(self) -> str:
        return "morpheus_helm_spec_template"

    @property
    def schema(self) -> ResourceSchema:
        return self.SCHEMA

    def build_payload(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        return {
            self.object_key: {
                "name": desired["name"],
                "type": {"code": "helm"},
                "file": source_to_file(source_from_attributes(desired)),
            }
        }

    def flatten(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        attributes = {"name": entity.get("name")}
        attributes.update(source_to_attributes(source_from_file(entity.get("file") or {})))
        return attributes

"""
Workflow catalog item resource.

Logos are uploaded through a separate multipart endpoint once the item
exists. The API does not return the local file path, so the ``*_path``
attributes are carried over from prior state.
"""

from typing import Any, Dict, List, Optional

from client import FilePayload
from resources.base import ResourceReconciler, compact, read_attachment
from resources.schema import Attribute, ExclusiveGroups, ResourceSchema, trim_trailing_newline

# (form field, path attribute, file name attribute)
LOGO_ATTACHMENTS = (
    ("logo", "logo_image_path", "logo_image_name"),
    ("darkLogo", "dark_logo_image_path", "dark_logo_image_name"),
)


def image_file_name(image_path: Optional[str]) -> Optional[str]:
    """Recover the uploaded file name from a stored image path."""
    if not image_path:
        return None
    return image_path.rsplit("/", 1)[-1].replace("_original", "", 1)


class WorkflowCatalogItem(ResourceReconciler):
    """Morpheus workflow catalog item."""

    api_path = "/api/catalog-item-types"
    object_key = "catalogItemType"
    list_key = "catalogItemTypes"

    SCHEMA = ResourceSchema(
        attributes=[
            Attribute(
                "name", "string", "The name of the workflow catalog item", required=True
            ),
            Attribute(
                "labels",
                "set",
                "The organization labels associated with the catalog item",
                optional=True,
                computed=True,
            ),
            Attribute(
                "description",
                "string",
                "The description of the workflow catalog item",
                optional=True,
                computed=True,
            ),
            Attribute(
                "category",
                "string",
                "The category of the workflow catalog item",
                optional=True,
                computed=True,
            ),
            Attribute(
                "enabled",
                "boolean",
                "Whether the workflow catalog item is enabled",
                optional=True,
                default=True,
            ),
            Attribute(
                "featured",
                "boolean",
                "Whether the workflow catalog item is featured",
                optional=True,
                computed=True,
            ),
            Attribute(
                "workflow_id",
                "integer",
                "The id of the workflow associated with the workflow catalog item",
                required=True,
            ),
            Attribute(
                "context_type",
                "string",
                "The Morpheus context type of the operational workflow",
                optional=True,
                computed=True,
                enum=("instance", "server", "appliance"),
            ),
            Attribute(
                "content",
                "string",
                "The markdown content associated with the workflow catalog item",
                optional=True,
                computed=True,
                normalize=trim_trailing_newline,
            ),
            Attribute(
                "option_type_ids",
                "list",
                "The list of option type ids associated with the workflow catalog item",
                optional=True,
                computed=True,
                elem="integer",
            ),
            Attribute(
                "logo_image_name",
                "string",
                "The file name of the workflow catalog item logo image",
                optional=True,
                computed=True,
            ),
            Attribute(
                "logo_image_path",
                "string",
                "The file path of the workflow catalog item logo image including the file name",
                optional=True,
                local_only=True,
            ),
            Attribute(
                "dark_logo_image_name",
                "string",
                "The file name of the workflow catalog item dark mode logo image",
                optional=True,
                computed=True,
            ),
            Attribute(
                "dark_logo_image_path",
                "string",
                "The file path of the workflow catalog item dark mode logo image "
                "including the file name",
                optional=True,
                local_only=True,
            ),
            Attribute(
                "visibility",
                "string",
                "The visibility of the workflow catalog item (public or private)",
                required=True,
                enum=("public", "private"),
            ),
            Attribute(
                "form_id",
                "integer",
                "The id of the form associated with the workflow catalog item",
                optional=True,
            ),
        ],
        exclusive_groups=[
            ExclusiveGroups(groups=(("option_type_ids",), ("form_id",))),
            ExclusiveGroups(groups=(("logo_image_path", "logo_image_name"),)),
            ExclusiveGroups(groups=(("dark_logo_image_path", "dark_logo_image_name"),)),
        ],
    )

    @property
    def type_name(self) -> str:
        return "morpheus_workflow_catalog_item"

    @property
    def schema(self) -> ResourceSchema:
        return self.SCHEMA

    def attachment_path(self, resource_id: str) -> str:
        return f"{self.api_path}/{resource_id}/update-logo"

    def build_payload(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        catalog_item = compact(
            {
                "name": desired["name"],
                "description": desired.get("description"),
                "category": desired.get("category"),
                "enabled": desired.get("enabled"),
                "featured": desired.get("featured"),
                "type": "workflow",
                "iconPath": "custom",
                "context": desired.get("context_type"),
                "content": desired.get("content"),
                "visibility": desired["visibility"],
                "workflow": {"id": desired["workflow_id"]},
                "labels": sorted(desired.get("labels") or []),
                "optionTypes": list(desired.get("option_type_ids") or []),
            }
        )
        if desired.get("form_id"):
            catalog_item["formType"] = "form"
            catalog_item["form"] = {"id": desired["form_id"]}

        return {self.object_key: catalog_item}

    def flatten(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": entity.get("name"),
            "labels": entity.get("labels") or [],
            "description": entity.get("description"),
            "category": entity.get("category"),
            "enabled": entity.get("enabled"),
            "featured": entity.get("featured"),
            "workflow_id": (entity.get("workflow") or {}).get("id"),
            "context_type": entity.get("context"),
            "content": entity.get("content"),
            "option_type_ids": [
                int(option["id"]) for option in entity.get("optionTypes") or []
            ],
            "visibility": entity.get("visibility"),
            "form_id": (entity.get("form") or {}).get("id"),
            "logo_image_name": image_file_name(entity.get("imagePath")),
            "dark_logo_image_name": image_file_name(entity.get("darkImagePath")),
        }

    def attachments(
        self, desired: Dict[str, Any], prior: Optional[Dict[str, Any]]
    ) -> List[FilePayload]:
        files = []
        for parameter_name, path_attr, name_attr in LOGO_ATTACHMENTS:
            path = desired.get(path_attr)
            file_name = desired.get(name_attr)
            if not (path and file_name):
                continue
            if (
                prior is not None
                and prior.get(path_attr) == path
                and prior.get(name_attr) == file_name
            ):
                continue
            files.append(read_attachment(parameter_name, path, file_name))
        return files

"""Ansible Tower integration resource."""

from typing import Any, Dict

from resources.base import ResourceReconciler
from resources.schema import (
    Attribute,
    ExclusiveGroups,
    ResourceSchema,
    hashed_secret_matches,
)


class AnsibleTowerIntegration(ResourceReconciler):
    """
    Morpheus Ansible Tower integration.

    Authenticates either through a credential store entry (``credential_id``)
    or an inline ``username`` and ``password``. The API only ever returns the
    password's SHA-256 digest, so the password attribute is compared against
    that digest instead of the plaintext.
    """

    api_path = "/api/integrations"
    object_key = "integration"
    list_key = "integrations"

    SCHEMA = ResourceSchema(
        attributes=[
            Attribute(
                "name",
                "string",
                "The name of the Ansible Tower integration",
                required=True,
            ),
            Attribute(
                "enabled",
                "boolean",
                "Whether the Ansible Tower integration is enabled",
                optional=True,
                computed=True,
            ),
            Attribute(
                "url", "string", "The url of the Ansible Tower instance", required=True
            ),
            Attribute(
                "username",
                "string",
                "The username of the account used to connect to Ansible Tower",
                optional=True,
            ),
            Attribute(
                "password",
                "string",
                "The password of the account used to connect to Ansible Tower",
                optional=True,
                sensitive=True,
                diff_suppress=hashed_secret_matches,
            ),
            Attribute(
                "credential_id",
                "integer",
                "The ID of the credential store entry used for authentication",
                optional=True,
                computed=True,
            ),
        ],
        exclusive_groups=[
            ExclusiveGroups(
                groups=(("credential_id",), ("username", "password")), required=True
            )
        ],
    )

    @property
    def type_name(self) -> str:
        return "morpheus_ansible_tower_integration"

    @property
    def schema(self) -> ResourceSchema:
        return self.SCHEMA

    def build_payload(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        integration: Dict[str, Any] = {
            "name": desired["name"],
            "type": "ansibleTower",
            "serviceVersion": "v2",
            "serviceUrl": desired["url"],
        }
        if "enabled" in desired:
            integration["enabled"] = desired["enabled"]

        if desired.get("credential_id"):
            integration["credential"] = {
                "type": "username-password",
                "id": desired["credential_id"],
            }
        else:
            integration["credential"] = {"type": "local"}
            integration["serviceUsername"] = desired["username"]
            integration["servicePassword"] = desired["password"]

        return {self.object_key: integration}

    def flatten(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        attributes = {
            "name": entity.get("name"),
            "enabled": entity.get("enabled"),
            "url": entity.get("url") or entity.get("serviceUrl"),
        }
        credential = entity.get("credential") or {}
        if credential.get("id"):
            attributes["credential_id"] = credential["id"]
        else:
            attributes["username"] = entity.get("username") or entity.get(
                "serviceUsername"
            )
            attributes["password"] = entity.get("passwordHash")
        return attributes

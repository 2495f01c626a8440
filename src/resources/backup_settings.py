"""
Backup settings resource.

Backup settings are a singleton on the appliance: there is nothing to create
or delete remotely. Create and update both replace the settings, and delete
only stops managing them.
"""

import logging
from typing import Any, Dict, Optional

from resources.base import (
    ReconcilerContext,
    ResourceReconciler,
    ResourceState,
    compact,
)
from resources.schema import Attribute, ResourceSchema

logger = logging.getLogger(__name__)

BACKUP_SETTINGS_ID = "backup-settings"


class BackupSettings(ResourceReconciler):
    """Appliance-wide Morpheus backup settings."""

    api_path = "/api/backup-settings"
    object_key = "backupSettings"

    SCHEMA = ResourceSchema(
        attributes=[
            Attribute(
                "backups_enabled",
                "boolean",
                "Whether backups are enabled on the appliance",
                optional=True,
                computed=True,
            ),
            Attribute(
                "create_backups",
                "boolean",
                "Whether backups are created by default for new instances",
                optional=True,
                computed=True,
            ),
            Attribute(
                "backup_appliance",
                "boolean",
                "Whether the appliance itself is backed up",
                optional=True,
                computed=True,
            ),
            Attribute(
                "default_backup_bucket_id",
                "integer",
                "The ID of the default storage bucket for backups",
                optional=True,
                computed=True,
            ),
            Attribute(
                "default_backup_schedule_id",
                "integer",
                "The ID of the default backup schedule",
                optional=True,
                computed=True,
            ),
            Attribute(
                "backup_retention_count",
                "integer",
                "The default number of backups to retain",
                optional=True,
                computed=True,
            ),
        ]
    )

    @property
    def type_name(self) -> str:
        return "morpheus_backup_settings"

    @property
    def schema(self) -> ResourceSchema:
        return self.SCHEMA

    def object_path(self, resource_id: str) -> str:
        return self.api_path

    def build_payload(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        settings = compact(
            {
                "backupsEnabled": desired.get("backups_enabled"),
                "createBackups": desired.get("create_backups"),
                "backupAppliance": desired.get("backup_appliance"),
                "retentionCount": desired.get("backup_retention_count"),
            }
        )
        if desired.get("default_backup_bucket_id") is not None:
            settings["defaultStorageBucket"] = {"id": desired["default_backup_bucket_id"]}
        if desired.get("default_backup_schedule_id") is not None:
            settings["defaultSchedule"] = {"id": desired["default_backup_schedule_id"]}
        return {self.object_key: settings}

    def flatten(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "backups_enabled": entity.get("backupsEnabled"),
            "create_backups": entity.get("createBackups"),
            "backup_appliance": entity.get("backupAppliance"),
            "default_backup_bucket_id": (entity.get("defaultStorageBucket") or {}).get(
                "id"
            ),
            "default_backup_schedule_id": (entity.get("defaultSchedule") or {}).get(
                "id"
            ),
            "backup_retention_count": entity.get("retentionCount"),
        }

    async def read(
        self, state: ResourceState, ctx: ReconcilerContext
    ) -> Optional[ResourceState]:
        # Singleton: no identifier or name is needed to look it up
        response = await ctx.client.get(self.api_path)
        entity = self._unwrap(response.body)
        entity = dict(entity, id=BACKUP_SETTINGS_ID)
        return self._observe(entity, state.attributes)

    async def delete(self, state: ResourceState, ctx: ReconcilerContext) -> None:
        logger.info(
            f"Removing {self.type_name} from management; "
            f"appliance settings are left unchanged"
        )

    async def _create_remote(
        self, payload: Dict[str, Any], ctx: ReconcilerContext
    ) -> str:
        await ctx.client.put(self.api_path, payload)
        return BACKUP_SETTINGS_ID

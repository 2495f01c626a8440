"""Unit tests for resources/ansible_tower_integration.py."""

import pytest

from resources.ansible_tower_integration import AnsibleTowerIntegration
from resources.base import SENSITIVE_PLACEHOLDER, ValidationFailed
from resources.schema import sha256_hex

INTEGRATIONS_PATH = "/api/integrations"

INLINE = {
    "name": "tower",
    "url": "https://tower.example.com",
    "username": "admin",
    "password": "s3cret",
}

CREDENTIAL = {
    "name": "tower",
    "url": "https://tower.example.com",
    "credential_id": 42,
}


class TestPayload:
    """Tests for request payload construction."""

    def test_inline_credentials(self):
        payload = AnsibleTowerIntegration().build_payload(INLINE)
        assert payload == {
            "integration": {
                "name": "tower",
                "type": "ansibleTower",
                "serviceVersion": "v2",
                "serviceUrl": "https://tower.example.com",
                "credential": {"type": "local"},
                "serviceUsername": "admin",
                "servicePassword": "s3cret",
            }
        }

    def test_credential_reference(self):
        integration = AnsibleTowerIntegration().build_payload(
            dict(CREDENTIAL, enabled=False)
        )["integration"]
        assert integration["credential"] == {"type": "username-password", "id": 42}
        assert integration["enabled"] is False
        assert "serviceUsername" not in integration
        assert "servicePassword" not in integration


class TestFlatten:
    """Tests for observed state mapping."""

    def test_inline_credentials(self):
        attributes = AnsibleTowerIntegration().flatten(
            {
                "id": 4,
                "name": "tower",
                "enabled": True,
                "serviceUrl": "https://tower.example.com",
                "serviceUsername": "admin",
                "passwordHash": "ABCDEF",
                "credential": {"type": "local"},
            }
        )
        assert attributes["url"] == "https://tower.example.com"
        assert attributes["username"] == "admin"
        assert attributes["password"] == "ABCDEF"
        assert "credential_id" not in attributes

    def test_credential_reference(self):
        attributes = AnsibleTowerIntegration().flatten(
            {"id": 4, "name": "tower", "url": "u", "credential": {"id": 42}}
        )
        assert attributes["credential_id"] == 42
        assert "password" not in attributes


@pytest.mark.asyncio
class TestValidation:
    """Exclusive credential groups are enforced before any remote call."""

    async def test_both_groups_rejected(self, ctx, fake_client):
        with pytest.raises(ValidationFailed, match="conflict"):
            await AnsibleTowerIntegration().create(dict(INLINE, credential_id=42), ctx)
        assert fake_client.calls == []

    async def test_neither_group_rejected(self, ctx, fake_client):
        with pytest.raises(ValidationFailed, match="must be supplied"):
            await AnsibleTowerIntegration().create(
                {"name": "tower", "url": "https://tower.example.com"}, ctx
            )
        assert fake_client.calls == []

    async def test_username_without_password_rejected(self, ctx, fake_client):
        desired = dict(INLINE)
        del desired["password"]
        with pytest.raises(ValidationFailed, match="password"):
            await AnsibleTowerIntegration().create(desired, ctx)
        assert fake_client.calls == []


@pytest.mark.asyncio
class TestLifecycle:
    """Tests for Ansible Tower integrations against the fake appliance."""

    async def test_password_digest_suppresses_drift(self, ctx, fake_client):
        tower = AnsibleTowerIntegration()
        state = await tower.create(INLINE, ctx)

        assert state.attributes["password"] == sha256_hex("s3cret")
        assert tower.diff(state, INLINE).has_drift is False

    async def test_digest_comparison_is_case_insensitive(self, ctx, fake_client):
        tower = AnsibleTowerIntegration()
        state = await tower.create(INLINE, ctx)
        state.attributes["password"] = state.attributes["password"].upper()
        assert tower.diff(state, INLINE).has_drift is False

    async def test_changed_password_is_drift(self, ctx):
        tower = AnsibleTowerIntegration()
        state = await tower.create(INLINE, ctx)

        drift = tower.diff(state, dict(INLINE, password="rotated"))
        assert drift.changed_attributes == ["password"]
        assert "rotated" not in drift.drift_details
        assert SENSITIVE_PLACEHOLDER in drift.drift_details

    async def test_update_sends_credentials(self, ctx, fake_client):
        tower = AnsibleTowerIntegration()
        state = await tower.create(INLINE, ctx)

        updated = await tower.update(state, dict(INLINE, password="rotated"), ctx)

        _, path, body = fake_client.calls_for("PUT")[0]
        assert path == f"{INTEGRATIONS_PATH}/{state.id}"
        assert body["integration"]["servicePassword"] == "rotated"
        assert updated.attributes["password"] == sha256_hex("rotated")

    async def test_create_with_credential_reference(self, ctx, fake_client):
        tower = AnsibleTowerIntegration()
        state = await tower.create(CREDENTIAL, ctx)

        _, _, body = fake_client.calls_for("POST")[0]
        assert body["integration"]["credential"]["id"] == 42
        assert state.attributes["credential_id"] == 42
        assert tower.diff(state, CREDENTIAL).has_drift is False

"""Unit tests for resources/workflow_catalog_item.py."""

import pytest

from resources.base import ReconcileError, ValidationFailed
from resources.workflow_catalog_item import WorkflowCatalogItem, image_file_name

CATALOG_PATH = "/api/catalog-item-types"


def _desired(**overrides):
    desired = {
        "name": "restart-service",
        "workflow_id": 11,
        "visibility": "private",
        "labels": ["ops", "demo"],
        "description": "Restart a service",
        "option_type_ids": [3, 1],
    }
    desired.update(overrides)
    return desired


class TestImageFileName:
    """Tests for image_file_name."""

    def test_strips_original_suffix(self):
        path = "/storage/logos/uploads/CatalogItemType/3/logo/logo_original.png"
        assert image_file_name(path) == "logo.png"

    def test_empty(self):
        assert image_file_name(None) is None
        assert image_file_name("") is None


class TestPayload:
    """Tests for request payload construction."""

    def test_payload(self):
        payload = WorkflowCatalogItem().build_payload(
            WorkflowCatalogItem.SCHEMA.with_defaults(_desired(context_type="instance"))
        )
        item = payload["catalogItemType"]
        assert item["type"] == "workflow"
        assert item["iconPath"] == "custom"
        assert item["workflow"] == {"id": 11}
        assert item["labels"] == ["demo", "ops"]
        assert item["optionTypes"] == [3, 1]
        assert item["context"] == "instance"
        assert item["enabled"] is True
        assert "form" not in item
        assert "category" not in item

    def test_payload_with_form(self):
        desired = _desired(form_id=8)
        del desired["option_type_ids"]
        item = WorkflowCatalogItem().build_payload(desired)["catalogItemType"]
        assert item["formType"] == "form"
        assert item["form"] == {"id": 8}


class TestValidation:
    """Tests for static validation."""

    def test_option_types_and_form_conflict(self):
        with pytest.raises(ValidationFailed, match="conflict"):
            WorkflowCatalogItem().validate(_desired(form_id=8))

    def test_logo_path_requires_name(self):
        with pytest.raises(ValidationFailed, match="logo_image_name"):
            WorkflowCatalogItem().validate(_desired(logo_image_path="/tmp/logo.png"))

    def test_invalid_visibility(self):
        with pytest.raises(ValidationFailed, match="visibility"):
            WorkflowCatalogItem().validate(_desired(visibility="everyone"))


@pytest.mark.asyncio
class TestLifecycle:
    """Tests for workflow catalog items against the fake appliance."""

    async def test_create_without_logos(self, ctx, fake_client):
        item = WorkflowCatalogItem()
        state = await item.create(_desired(), ctx)

        assert state.attributes["labels"] == ["demo", "ops"]
        assert state.attributes["option_type_ids"] == [3, 1]
        assert state.attributes["workflow_id"] == 11
        assert fake_client.calls_for("UPLOAD") == []
        assert item.diff(state, _desired()).has_drift is False

    async def test_create_uploads_logos(self, ctx, fake_client, logo_files):
        logo, dark = logo_files
        desired = _desired(
            logo_image_path=logo,
            logo_image_name="logo.png",
            dark_logo_image_path=dark,
            dark_logo_image_name="dark.png",
        )
        item = WorkflowCatalogItem()
        state = await item.create(desired, ctx)

        uploads = fake_client.calls_for("UPLOAD")
        assert len(uploads) == 1
        _, path, files = uploads[0]
        assert path == f"{CATALOG_PATH}/{state.id}/update-logo"
        assert [(f.parameter_name, f.file_name, f.content) for f in files] == [
            ("logo", "logo.png", b"\x89PNG light"),
            ("darkLogo", "dark.png", b"\x89PNG dark"),
        ]
        assert state.attributes["logo_image_name"] == "logo.png"
        assert state.attributes["dark_logo_image_name"] == "dark.png"
        assert state.attributes["logo_image_path"] == logo
        assert item.diff(state, desired).has_drift is False

    async def test_upload_failure_keeps_created_item(self, ctx, fake_client, logo_files):
        logo, _ = logo_files
        fake_client.fail_uploads = True
        item = WorkflowCatalogItem()

        state = await item.create(
            _desired(logo_image_path=logo, logo_image_name="logo.png"), ctx
        )

        assert state.id is not None
        assert state.attributes["logo_image_name"] is None
        assert state.id in fake_client.collections[CATALOG_PATH].entities

    async def test_unreadable_logo_fails_before_create(self, ctx, fake_client, tmp_path):
        missing = str(tmp_path / "missing.png")
        with pytest.raises(ReconcileError, match="Cannot read logo file"):
            await WorkflowCatalogItem().create(
                _desired(logo_image_path=missing, logo_image_name="missing.png"), ctx
            )
        assert fake_client.calls == []

    async def test_update_skips_unchanged_logo(self, ctx, fake_client, logo_files):
        logo, _ = logo_files
        desired = _desired(logo_image_path=logo, logo_image_name="logo.png")
        item = WorkflowCatalogItem()
        state = await item.create(desired, ctx)

        await item.update(state, dict(desired, description="Changed"), ctx)

        assert len(fake_client.calls_for("UPLOAD")) == 1

    async def test_update_reuploads_changed_logo(self, ctx, fake_client, logo_files):
        logo, dark = logo_files
        desired = _desired(logo_image_path=logo, logo_image_name="logo.png")
        item = WorkflowCatalogItem()
        state = await item.create(desired, ctx)

        changed = dict(desired, logo_image_path=dark, logo_image_name="new.png")
        assert "logo_image_path" in item.diff(state, changed).changed_attributes
        updated = await item.update(state, changed, ctx)

        uploads = fake_client.calls_for("UPLOAD")
        assert len(uploads) == 2
        assert [f.file_name for f in uploads[1][2]] == ["new.png"]
        assert updated.attributes["logo_image_name"] == "new.png"
        assert updated.attributes["logo_image_path"] == dark

    async def test_read_carries_logo_path(self, ctx, logo_files):
        logo, _ = logo_files
        item = WorkflowCatalogItem()
        state = await item.create(
            _desired(logo_image_path=logo, logo_image_name="logo.png"), ctx
        )

        refreshed = await item.read(state, ctx)
        assert refreshed.attributes["logo_image_path"] == logo

    async def test_import_has_no_logo_path(self, ctx, fake_client):
        resource_id = fake_client.seed(
            CATALOG_PATH,
            {
                "name": "imported",
                "visibility": "public",
                "workflow": {"id": 2},
                "imagePath": "/storage/logos/uploads/CatalogItemType/1/logo/a_original.png",
            },
        )
        state = await WorkflowCatalogItem().import_state(resource_id, ctx)
        assert state.attributes["logo_image_name"] == "a.png"
        assert state.attributes["logo_image_path"] is None

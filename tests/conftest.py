"""Pytest configuration and fixtures."""

import copy
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

import config
from client import APIError, APIResponse, FilePayload
from resources.base import ReconcilerContext
from resources.registry import register_builtin_resources, reset_registry
from resources.schema import sha256_hex


class FakeCollection:
    """An in-memory Morpheus collection endpoint."""

    def __init__(
        self,
        api_path: str,
        object_key: str,
        list_key: str = "",
        stored: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
        upload_fields: Optional[Dict[str, str]] = None,
    ):
        self.api_path = api_path
        self.object_key = object_key
        self.list_key = list_key
        self.stored = stored or (lambda entity: entity)
        self.upload_fields = upload_fields or {}
        self.entities: Dict[str, Dict[str, Any]] = {}


class FakeMorpheusClient:
    """
    In-memory stand-in for MorpheusClient.

    Collections answer GET/POST/PUT/DELETE the way the appliance does,
    wrapping entities in their object key. Every call is recorded.
    """

    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}
        self.singletons: Dict[str, Tuple[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self.next_id = 1
        self.fail_uploads = False
        self.fail_status: Optional[int] = None

    def add_collection(self, collection: FakeCollection) -> FakeCollection:
        self.collections[collection.api_path] = collection
        return collection

    def add_singleton(self, path: str, object_key: str, entity: Dict[str, Any]) -> None:
        self.singletons[path] = (object_key, entity)

    def seed(self, api_path: str, entity: Dict[str, Any]) -> str:
        """Store an entity directly, bypassing the create call."""
        collection = self.collections[api_path]
        entity = dict(entity)
        entity.setdefault("id", self._allocate_id())
        collection.entities[str(entity["id"])] = entity
        return str(entity["id"])

    def entity(self, api_path: str, resource_id: str) -> Dict[str, Any]:
        return self.collections[api_path].entities[str(resource_id)]

    def calls_for(self, method: str) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == method]

    def _allocate_id(self) -> int:
        resource_id = self.next_id
        self.next_id += 1
        return resource_id

    def _resolve(self, path: str) -> Tuple[FakeCollection, Optional[str]]:
        if path in self.collections:
            return self.collections[path], None
        parent, _, resource_id = path.rpartition("/")
        if parent in self.collections:
            return self.collections[parent], resource_id
        raise APIError(f"No route for {path}", status_code=404)

    def _check_failure(self) -> None:
        if self.fail_status is not None:
            raise APIError("Injected failure", status_code=self.fail_status)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        self.calls.append(("GET", path, params))
        self._check_failure()
        if path in self.singletons:
            object_key, entity = self.singletons[path]
            return APIResponse(200, {object_key: copy.deepcopy(entity)})

        collection, resource_id = self._resolve(path)
        if resource_id is None:
            name = (params or {}).get("name")
            entities = [
                copy.deepcopy(e)
                for e in collection.entities.values()
                # The appliance matches the name filter loosely
                if name is None or name in e.get("name", "")
            ]
            return APIResponse(200, {collection.list_key: entities})

        if resource_id not in collection.entities:
            raise APIError(f"{collection.object_key} not found", status_code=404)
        return APIResponse(
            200, {collection.object_key: copy.deepcopy(collection.entities[resource_id])}
        )

    async def post(self, path: str, body: Dict[str, Any]) -> APIResponse:
        self.calls.append(("POST", path, copy.deepcopy(body)))
        self._check_failure()
        collection, _ = self._resolve(path)
        entity = collection.stored(copy.deepcopy(body[collection.object_key]))
        entity["id"] = self._allocate_id()
        collection.entities[str(entity["id"])] = entity
        return APIResponse(200, {"success": True, collection.object_key: copy.deepcopy(entity)})

    async def put(self, path: str, body: Dict[str, Any]) -> APIResponse:
        self.calls.append(("PUT", path, copy.deepcopy(body)))
        self._check_failure()
        if path in self.singletons:
            object_key, entity = self.singletons[path]
            entity.update(copy.deepcopy(body[object_key]))
            return APIResponse(200, {"success": True})

        collection, resource_id = self._resolve(path)
        if resource_id not in collection.entities:
            raise APIError(f"{collection.object_key} not found", status_code=404)
        entity = collection.entities[resource_id]
        entity.update(collection.stored(copy.deepcopy(body[collection.object_key])))
        return APIResponse(200, {"success": True, collection.object_key: copy.deepcopy(entity)})

    async def delete(self, path: str) -> APIResponse:
        self.calls.append(("DELETE", path, None))
        self._check_failure()
        collection, resource_id = self._resolve(path)
        if resource_id not in collection.entities:
            raise APIError(f"{collection.object_key} not found", status_code=404)
        del collection.entities[resource_id]
        return APIResponse(200, {"success": True})

    async def upload_files(self, path: str, files: List[FilePayload]) -> APIResponse:
        self.calls.append(("UPLOAD", path, list(files)))
        if self.fail_uploads:
            raise APIError("Upload rejected", status_code=500)
        collection, resource_id = self._resolve(path.rsplit("/", 1)[0])
        entity = collection.entities[resource_id]
        for payload in files:
            stem, ext = os.path.splitext(payload.file_name)
            entity[collection.upload_fields[payload.parameter_name]] = (
                f"/storage/logos/uploads/CatalogItemType/{resource_id}/"
                f"{payload.parameter_name}/{stem}_original{ext}"
            )
        return APIResponse(200, {"success": True})


def store_helm_template(entity: Dict[str, Any]) -> Dict[str, Any]:
    """The appliance reports repository sources as 'git'."""
    file = entity.get("file") or {}
    if file.get("sourceType") == "repository":
        file["sourceType"] = "git"
    return entity


def store_integration(entity: Dict[str, Any]) -> Dict[str, Any]:
    """The appliance only returns a digest of the service password."""
    password = entity.pop("servicePassword", None)
    if password is not None:
        entity["passwordHash"] = sha256_hex(password)
    if "serviceUrl" in entity:
        entity["url"] = entity["serviceUrl"]
    if "serviceUsername" in entity:
        entity["username"] = entity["serviceUsername"]
    return entity


def store_catalog_item(entity: Dict[str, Any]) -> Dict[str, Any]:
    """The appliance expands option type ids into objects."""
    if "optionTypes" in entity:
        entity["optionTypes"] = [
            {"id": option_id, "name": f"option-{option_id}"}
            for option_id in entity["optionTypes"]
        ]
    return entity


@pytest.fixture
def fake_client():
    """A fake appliance serving every built-in resource kind."""
    client = FakeMorpheusClient()
    client.add_collection(
        FakeCollection(
            "/api/library/spec-templates",
            "specTemplate",
            "specTemplates",
            stored=store_helm_template,
        )
    )
    client.add_collection(
        FakeCollection(
            "/api/integrations",
            "integration",
            "integrations",
            stored=store_integration,
        )
    )
    client.add_collection(
        FakeCollection(
            "/api/catalog-item-types",
            "catalogItemType",
            "catalogItemTypes",
            stored=store_catalog_item,
            upload_fields={"logo": "imagePath", "darkLogo": "darkImagePath"},
        )
    )
    client.add_singleton(
        "/api/backup-settings",
        "backupSettings",
        {
            "backupsEnabled": True,
            "createBackups": True,
            "backupAppliance": False,
            "defaultStorageBucket": None,
            "defaultSchedule": {"id": 2, "name": "Daily at Midnight"},
            "retentionCount": 7,
        },
    )
    return client


@pytest.fixture
def ctx(fake_client):
    """Reconciler context using the fake appliance."""
    return ReconcilerContext(client=fake_client)


@pytest.fixture
def registry():
    """A fresh registry with the built-in resource kinds."""
    reset_registry()
    reg = register_builtin_resources()
    yield reg
    reset_registry()


@pytest.fixture(autouse=True)
def clean_config():
    """Reset the global configuration between tests."""
    config.reset_config()
    yield
    config.reset_config()


@pytest.fixture
def logo_files(tmp_path):
    """Two logo image files on disk."""
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"\x89PNG light")
    dark = tmp_path / "dark.png"
    dark.write_bytes(b"\x89PNG dark")
    return str(logo), str(dark)

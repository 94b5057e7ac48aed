import io
import uuid
import zipfile
from unittest.mock import AsyncMock

import pytest

from connections.in_memory_storage_provider import InMemoryAssetStore
from core.exceptions import StorageError, ValidationError
from domain.keys import metadata_key, model_key, texture_key
from domain.models import AssetStatus
from services.metadata_repository import MetadataRepository
from services.upload_coordinator import UploadCoordinator


def make_zip(entries: list[tuple[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


CHAIR_ZIP = make_zip([("mesh.obj", b"v 0 0 0\nf 1 1 1"), ("skin.png", b"\x89PNG-skin")])


# --- FIXTURES ---


@pytest.fixture
def store():
    return InMemoryAssetStore(base_url="https://blobs.test")


@pytest.fixture
def repository(store):
    return MetadataRepository(store)


@pytest.fixture
def dispatcher():
    dispatcher = AsyncMock()
    dispatcher.dispatch.return_value = None
    return dispatcher


@pytest.fixture
def coordinator(store, repository, dispatcher):
    return UploadCoordinator(store=store, repository=repository, dispatcher=dispatcher, max_upload_bytes=1024 * 1024)


# --- TESTS ---


@pytest.mark.asyncio
async def test_upload_happy_path(coordinator, store, repository, dispatcher):
    """
    Scenario: ZIP with mesh.obj + skin.png named "Chair".
    Expectation: blobs + metadata stored, status Uploaded, render dispatched.
    """
    response = await coordinator.upload("Chair", CHAIR_ZIP, "chair.zip")

    asset_id = response.id
    assert uuid.UUID(asset_id)
    assert response.name == "Chair"
    assert response.message

    # Blobs follow the fixed layout
    assert store.objects[model_key(asset_id, ".obj")][0] == b"v 0 0 0\nf 1 1 1"
    assert store.objects[texture_key(asset_id)][0] == b"\x89PNG-skin"
    assert store.objects[texture_key(asset_id)][1] == "image/png"
    assert metadata_key(asset_id) in store.objects

    record, _ = await repository.load(asset_id)
    assert record.status is AssetStatus.UPLOADED
    assert record.name == "Chair"
    assert record.model_url == f"https://blobs.test/models/{asset_id}/model.obj"
    assert record.texture_url == f"https://blobs.test/models/{asset_id}/texture.png"
    assert record.model_type == "obj"
    assert record.thumbnail_url is None
    assert record.timestamp > 0
    assert record.version == 1

    dispatcher.dispatch.assert_awaited_once_with(asset_id)


@pytest.mark.asyncio
async def test_each_upload_gets_a_fresh_id(coordinator):
    first = await coordinator.upload("Chair", CHAIR_ZIP, "chair.zip")
    second = await coordinator.upload("Chair", CHAIR_ZIP, "chair.zip")

    assert first.id != second.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "entries",
    [
        [("skin.png", b"P")],  # texture only
        [("mesh.obj", b"v")],  # model only
    ],
)
async def test_incomplete_bundle_writes_nothing(coordinator, store, dispatcher, entries):
    with pytest.raises(ValidationError):
        await coordinator.upload("Chair", make_zip(entries), "chair.zip")

    assert store.objects == {}
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_name_fails_fast(coordinator, store, dispatcher):
    with pytest.raises(ValidationError, match="name"):
        await coordinator.upload("   ", CHAIR_ZIP, "chair.zip")

    assert store.objects == {}
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_archive_fails_before_extraction(coordinator, store, dispatcher):
    with pytest.raises(ValidationError, match="ZIP file is missing"):
        await coordinator.upload("Chair", None, "chair.zip")

    assert store.objects == {}
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_fail_upload(coordinator, repository, dispatcher):
    """
    Scenario: the broker is down when the render is kicked.
    Expectation: upload still succeeds; asset stays Uploaded.
    """
    dispatcher.dispatch.side_effect = ConnectionError("redis unreachable")

    response = await coordinator.upload("Chair", CHAIR_ZIP, "chair.zip")

    record, _ = await repository.load(response.id)
    assert record.status is AssetStatus.UPLOADED


@pytest.mark.asyncio
async def test_metadata_failure_leaves_orphaned_blobs(coordinator, store, repository, dispatcher):
    """
    Scenario: blobs stored, metadata write fails.
    Expectation: error surfaces, blobs are NOT rolled back, no render dispatched.
    """
    repository.create = AsyncMock(side_effect=StorageError("metadata put failed"))

    with pytest.raises(StorageError):
        await coordinator.upload("Chair", CHAIR_ZIP, "chair.zip")

    keys = list(store.objects)
    assert len(keys) == 2
    assert any(k.endswith("/model.obj") for k in keys)
    assert any(k.endswith("/texture.png") for k in keys)
    dispatcher.dispatch.assert_not_awaited()

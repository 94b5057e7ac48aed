import json

import pytest

from connections.in_memory_storage_provider import InMemoryAssetStore
from core.exceptions import ConflictError, NotFoundError, StorageError
from domain.models import AssetStatus, MetadataRecord
from services.metadata_repository import MetadataRepository, apply_transition


def make_record(asset_id: str, timestamp: int = 1, **kwargs) -> MetadataRecord:
    return MetadataRecord(id=asset_id, name=f"Model {asset_id}", model_type="obj", timestamp=timestamp, **kwargs)


@pytest.fixture
def store():
    return InMemoryAssetStore()


@pytest.fixture
def repository(store):
    return MetadataRepository(store)


@pytest.mark.asyncio
async def test_record_is_stored_with_camel_case_keys(repository, store):
    await repository.create(make_record("a1", model_url="u1", texture_url="u2"))

    raw = json.loads(store.objects["models/a1/metadata.json"][0])

    assert raw["modelUrl"] == "u1"
    assert raw["textureUrl"] == "u2"
    assert raw["modelType"] == "obj"
    assert raw["status"] == "Uploaded"
    assert "thumbnailUrl" not in raw
    assert store.objects["models/a1/metadata.json"][1] == "application/json"


@pytest.mark.asyncio
async def test_reads_records_written_by_older_clients(repository, store):
    legacy = {
        "id": "old",
        "name": "Chair",
        "modelUrl": "m",
        "textureUrl": "t",
        "modelType": "gltf",
        "status": "Ready",
        "thumbnailUrl": "th",
        "timestamp": 42,
    }
    store.seed("models/old/metadata.json", json.dumps(legacy).encode())

    record, etag = await repository.load("old")

    assert record.status is AssetStatus.READY
    assert record.thumbnail_url == "th"
    assert record.version == 1
    assert etag


@pytest.mark.asyncio
async def test_create_refuses_to_overwrite(repository):
    await repository.create(make_record("dup"))

    with pytest.raises(ConflictError):
        await repository.create(make_record("dup"))


@pytest.mark.asyncio
async def test_load_missing_record_is_not_found(repository):
    with pytest.raises(NotFoundError):
        await repository.load("ghost")


@pytest.mark.asyncio
async def test_load_corrupt_record_is_storage_error(repository, store):
    store.seed("models/bad/metadata.json", b"{not json")

    with pytest.raises(StorageError):
        await repository.load("bad")


@pytest.mark.asyncio
async def test_save_bumps_version(repository):
    await repository.create(make_record("v"))
    record, etag = await repository.load("v")

    await repository.save(record, etag)

    reloaded, _ = await repository.load("v")
    assert reloaded.version == 2


@pytest.mark.asyncio
async def test_stale_etag_is_rejected(repository):
    """
    Two writers load the same version; the second save must not win silently.
    """
    await repository.create(make_record("race"))
    first, first_etag = await repository.load("race")
    second, second_etag = await repository.load("race")

    first.name = "first writer"
    await repository.save(first, first_etag)

    second.name = "second writer"
    with pytest.raises(ConflictError):
        await repository.save(second, second_etag)

    reloaded, _ = await repository.load("race")
    assert reloaded.name == "first writer"
    assert second.version == 1


@pytest.mark.asyncio
async def test_listing_is_newest_first_and_skips_garbage(repository, store):
    await repository.create(make_record("old", timestamp=100))
    await repository.create(make_record("new", timestamp=300))
    await repository.create(make_record("mid", timestamp=200))
    store.seed("models/broken/metadata.json", b"garbage")
    store.seed("models/new/texture.png", b"P")

    records = await repository.list_records()

    assert [r.id for r in records] == ["new", "mid", "old"]


def test_status_only_moves_out_of_uploaded():
    record = make_record("s")

    apply_transition(record, AssetStatus.READY)
    assert record.status is AssetStatus.READY

    with pytest.raises(ConflictError):
        apply_transition(record, AssetStatus.ERROR)

    with pytest.raises(ConflictError):
        apply_transition(make_record("t"), AssetStatus.UPLOADED)

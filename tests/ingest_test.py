import io
import zipfile

import pytest

from core.exceptions import ArchiveError, ValidationError
from services.ingest import extract_bundle, extract_bundle_async, validate_upload


def make_zip(entries: list[tuple[str, bytes]], compression: int = zipfile.ZIP_DEFLATED) -> bytes:
    """Builds an in-memory ZIP with entries in the given order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


def test_extracts_model_and_texture():
    archive = make_zip([("mesh.obj", b"v 0 0 0"), ("skin.png", b"PNGDATA")])

    bundle = extract_bundle(archive)

    assert bundle.model_bytes == b"v 0 0 0"
    assert bundle.texture_bytes == b"PNGDATA"
    assert bundle.model_extension == ".obj"
    assert bundle.model_type == "obj"


def test_first_match_in_archive_order_wins():
    """
    Two candidates of each kind: selection follows enumeration order, not content.
    """
    archive = make_zip(
        [
            ("textures/first.png", b"T1"),
            ("b.glb", b"GLB"),
            ("a.obj", b"OBJ"),
            ("second.png", b"T2"),
        ]
    )

    bundle = extract_bundle(archive)

    assert bundle.model_entry_name == "b.glb"
    assert bundle.model_extension == ".glb"
    assert bundle.model_bytes == b"GLB"
    assert bundle.texture_entry_name == "textures/first.png"
    assert bundle.texture_bytes == b"T1"


def test_extension_match_is_case_insensitive():
    archive = make_zip([("MODEL/Chair.GLTF", b"{}"), ("Skin.PNG", b"P")])

    bundle = extract_bundle(archive)

    assert bundle.model_extension == ".gltf"
    assert bundle.texture_entry_name == "Skin.PNG"


def test_directories_are_skipped():
    archive = make_zip([("fake.obj/", b""), ("real.json", b"{}"), ("t.png", b"P")])

    bundle = extract_bundle(archive)

    assert bundle.model_entry_name == "real.json"
    assert bundle.model_type == "json"


@pytest.mark.parametrize(
    "entries, message",
    [
        ([("skin.png", b"P")], "No supported model file"),
        ([("mesh.obj", b"v")], "No texture file"),
        ([("readme.txt", b"hi"), ("skin.jpg", b"J")], "No supported model file"),
    ],
)
def test_missing_entries_are_rejected(entries, message):
    with pytest.raises(ValidationError, match=message):
        extract_bundle(make_zip(entries))


def test_non_zip_payload_is_rejected():
    with pytest.raises(ValidationError, match="not a valid ZIP"):
        extract_bundle(b"definitely not a zip file")


def test_corrupt_entry_body_is_an_archive_error():
    payload = b"A" * 64
    archive = bytearray(make_zip([("mesh.obj", payload), ("skin.png", b"P")], compression=zipfile.ZIP_STORED))

    # Flip one byte of the stored model data so the CRC check fails on read
    offset = archive.find(payload)
    archive[offset] = ord("B")

    with pytest.raises(ArchiveError):
        extract_bundle(bytes(archive))


def test_unsupported_zip_version_is_rejected():
    archive = bytearray(make_zip([("mesh.obj", b"v"), ("skin.png", b"P")]))

    # "Version needed to extract" of the first central directory entry
    central = archive.find(b"PK\x01\x02")
    archive[central + 6] = 201

    with pytest.raises(ValidationError, match="not a valid ZIP"):
        extract_bundle(bytes(archive))


def test_garbled_entry_filename_is_an_archive_error():
    """
    The central directory says "skiñ.png" (UTF-8 flagged) but the local header
    holds bytes that do not decode.
    """
    name = "skiñ.png".encode("utf-8")
    archive = bytearray(make_zip([("mesh.obj", b"v"), ("skiñ.png", b"P")]))

    local = archive.find(name)
    archive[local + 3] = 0x8E

    with pytest.raises(ArchiveError):
        extract_bundle(bytes(archive))


@pytest.mark.asyncio
async def test_async_extraction_runs_in_thread():
    archive = make_zip([("mesh.glb", b"G"), ("skin.png", b"P")])

    bundle = await extract_bundle_async(archive)

    assert bundle.model_extension == ".glb"


# --- validate_upload ---


def test_validate_upload_trims_name():
    assert validate_upload("  Chair  ", b"zip", "bundle.ZIP", max_bytes=10) == "Chair"


@pytest.mark.parametrize(
    "name, archive, filename",
    [
        ("", b"zip", "a.zip"),
        ("   ", b"zip", "a.zip"),
        (None, b"zip", "a.zip"),
        ("Chair", None, "a.zip"),
        ("Chair", b"", "a.zip"),
        ("Chair", b"zip", "a.rar"),
        ("Chair", b"zip", None),
    ],
)
def test_validate_upload_rejects_bad_input(name, archive, filename):
    with pytest.raises(ValidationError):
        validate_upload(name, archive, filename, max_bytes=1024)


def test_validate_upload_enforces_size_limit():
    with pytest.raises(ValidationError, match="upload limit"):
        validate_upload("Chair", b"x" * 11, "a.zip", max_bytes=10)

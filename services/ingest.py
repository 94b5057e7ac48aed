import asyncio
import io
import zipfile
import zlib
from typing import Optional

import structlog
from core.exceptions import ArchiveError, ValidationError
from domain.keys import MODEL_EXTENSIONS, TEXTURE_EXTENSION
from domain.models import ExtractedBundle

logger = structlog.get_logger()


def validate_upload(name: Optional[str], archive: Optional[bytes], filename: Optional[str], max_bytes: int) -> str:
    """
    Cheap checks that must pass before anything is parsed or written.
    Returns the trimmed asset name.
    """
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Model name is missing.")

    if not archive:
        raise ValidationError("ZIP file is missing.")

    if not filename or not filename.lower().endswith(".zip"):
        raise ValidationError("Only ZIP files are allowed.")

    if len(archive) > max_bytes:
        raise ValidationError(f"Archive exceeds the {max_bytes // (1024 * 1024)} MB upload limit.")

    return clean_name


def extract_bundle(archive: bytes) -> ExtractedBundle:
    """
    Picks the model and the texture out of an uploaded ZIP.

    Selection is strictly first-match in archive enumeration order: the first
    non-directory entry ending in a model extension is the model, the first
    ending in .png is the texture. File contents are not inspected, so an
    archive holding two .obj files always yields whichever comes first.
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(archive))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError, ValueError) as e:
        raise ValidationError("Upload is not a valid ZIP archive.", original_error=e)

    with zf:
        model_info: Optional[zipfile.ZipInfo] = None
        texture_info: Optional[zipfile.ZipInfo] = None
        model_extension = ""

        for info in zf.infolist():
            if info.is_dir():
                continue

            file_name = info.filename.lower()

            if texture_info is None and file_name.endswith(TEXTURE_EXTENSION):
                texture_info = info

            ext = next((e for e in MODEL_EXTENSIONS if file_name.endswith(e)), None)
            if ext and model_info is None:
                model_info = info
                model_extension = ext

        if model_info is None:
            raise ValidationError(
                f"No supported model file ({', '.join(MODEL_EXTENSIONS)}) found in the ZIP."
            )
        if texture_info is None:
            raise ValidationError("No texture file (.png) found in the ZIP.")

        try:
            model_bytes = zf.read(model_info)
            texture_bytes = zf.read(texture_info)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError, ValueError) as e:
            # The central directory was fine but an entry header or body is broken or unsupported
            raise ArchiveError(f"Failed to read archive entries: {e}", original_error=e)

    logger.debug(
        "bundle_extracted",
        model_entry=model_info.filename,
        texture_entry=texture_info.filename,
        model_bytes=len(model_bytes),
        texture_bytes=len(texture_bytes),
    )

    return ExtractedBundle(
        model_bytes=model_bytes,
        texture_bytes=texture_bytes,
        model_extension=model_extension,
        model_entry_name=model_info.filename,
        texture_entry_name=texture_info.filename,
    )


async def extract_bundle_async(archive: bytes) -> ExtractedBundle:
    # zipfile is CPU/IO bound; run it in a worker thread
    return await asyncio.to_thread(extract_bundle, archive)

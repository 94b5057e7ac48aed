"""
Fixed storage layout for an asset. Every blob of an asset lives under models/{id}/.

The metadata record's URL fields stay authoritative; these helpers are the
fallback when a field is missing.
"""

MODELS_PREFIX = "models/"

MODEL_EXTENSIONS = (".obj", ".gltf", ".glb", ".json")
TEXTURE_EXTENSION = ".png"


def asset_prefix(asset_id: str) -> str:
    return f"{MODELS_PREFIX}{asset_id}/"


def model_key(asset_id: str, extension: str) -> str:
    # Accept both ".obj" and "obj"
    return f"{asset_prefix(asset_id)}model.{extension.lstrip('.')}"


def texture_key(asset_id: str) -> str:
    return f"{asset_prefix(asset_id)}texture.png"


def thumbnail_key(asset_id: str) -> str:
    return f"{asset_prefix(asset_id)}thumbnail.png"


def metadata_key(asset_id: str) -> str:
    return f"{asset_prefix(asset_id)}metadata.json"


def is_metadata_key(key: str) -> bool:
    return key.startswith(MODELS_PREFIX) and key.endswith("/metadata.json")

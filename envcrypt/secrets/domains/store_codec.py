"""Read and write the env.json secret store.

The store is a JSON document with two optional top-level maps:

    {
      "common": {"NAME": "encrypted:..."},
      "stages": {"dev": {"NAME": "encrypted:..."}}
    }
"""
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from .errors import StoreCorruptError
from .models import ENCRYPT_PREFIX, SecretStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def mark_encrypted(ciphertext: str) -> str:
    """Tag a ciphertext payload with the encryption marker."""
    return f"{ENCRYPT_PREFIX}{ciphertext}"


def is_encrypted(value: str) -> bool:
    return value.startswith(ENCRYPT_PREFIX)


def unmark_encrypted(value: str) -> str:
    """
    Strip the encryption marker from a stored value.

    Values without the marker are returned unchanged and handed to the KMS
    as-is; the service rejects them if they are not real ciphertext.

    Args:
        value: Stored secret value

    Returns:
        Raw ciphertext payload
    """
    if is_encrypted(value):
        return value[len(ENCRYPT_PREFIX):]
    logger.warning("Stored value has no encryption marker, decrypting it as-is")
    return value


def _string_map(data: Any, where: str, path: Path) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise StoreCorruptError(f"'{where}' in {path} must be a JSON object")
    for name, value in data.items():
        if not isinstance(value, str):
            raise StoreCorruptError(
                f"Value of '{where}.{name}' in {path} must be a string, got {type(value).__name__}"
            )
    return dict(data)


def _parse_store(text: str, path: Path) -> SecretStore:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreCorruptError(f"Failed to parse secret store at {path}: {e}")

    if not isinstance(document, dict):
        raise StoreCorruptError(f"Secret store at {path} must be a JSON object")

    common = _string_map(document.get("common", {}), "common", path)

    raw_stages = document.get("stages", {})
    if not isinstance(raw_stages, dict):
        raise StoreCorruptError(f"'stages' in {path} must be a JSON object")
    stages = {
        stage: _string_map(variables, f"stages.{stage}", path)
        for stage, variables in raw_stages.items()
    }

    extra = {key: value for key, value in document.items() if key not in ("common", "stages")}
    return SecretStore(common=common, stages=stages, extra=extra)


def load_store(path: PathLike) -> SecretStore:
    """
    Load the secret store from disk.

    Args:
        path: Path to env.json

    Returns:
        Parsed SecretStore

    Raises:
        StoreCorruptError: If the file is missing, unreadable, or malformed
    """
    path = Path(path)

    if not path.exists():
        raise StoreCorruptError(
            f"Secret store not found at: {path}\n"
            f"Create it first, e.g.: echo '{{\"common\": {{}}, \"stages\": {{}}}}' > {path}"
        )

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise StoreCorruptError(f"Failed to read secret store at {path}: {e}")

    store = _parse_store(text, path)
    logger.debug(f"Loaded secret store from {path} ({len(store.stages)} stage(s))")
    return store


def save_store(path: PathLike, store: SecretStore) -> None:
    """
    Write the full secret store back to disk.

    The new content goes to a temporary file in the same directory which then
    replaces the target, so a failed write never truncates the existing store.
    The existing file mode is kept and unknown top-level keys are written back.

    Args:
        path: Path to env.json
        store: Store to persist
    """
    path = Path(path)
    text = json.dumps(store.to_dict(), indent=2) + "\n"

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except Exception:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Saved secret store to {path}")

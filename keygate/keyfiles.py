"""Reading and writing plaintext key lists and key metadata files."""
from pathlib import Path

import orjson
import structlog

from .services.crypto.errors import KeyFileError

log = structlog.get_logger()


def read_key_list(path: str | Path) -> list[str]:
    """
    Read a JSON array of strings (plaintext tokens or envelopes).

    Raises:
        KeyFileError: If the file is unreadable or not an array of strings
    """
    path = Path(path)
    try:
        data = orjson.loads(path.read_bytes())
    except OSError as e:
        raise KeyFileError(f"Cannot read {path}: {e.strerror or e}") from e
    except orjson.JSONDecodeError as e:
        raise KeyFileError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise KeyFileError(f"{path} must contain a JSON array of strings")
    return data


def write_key_list(keys: list[str], path: str | Path) -> None:
    """
    Write keys as a JSON array with 2-space indentation.

    Raises:
        KeyFileError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.write_bytes(orjson.dumps(keys, option=orjson.OPT_INDENT_2))
    except OSError as e:
        raise KeyFileError(f"Cannot write {path}: {e.strerror or e}") from e
    log.info("key_file.written", path=str(path), count=len(keys))


def write_key_metadata(encryption_key: str, path: str | Path) -> None:
    """Write {"encryptionKey": ...} to a metadata file."""
    path = Path(path)
    try:
        path.write_bytes(orjson.dumps({"encryptionKey": encryption_key}, option=orjson.OPT_INDENT_2))
    except OSError as e:
        raise KeyFileError(f"Cannot write {path}: {e.strerror or e}") from e

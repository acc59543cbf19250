import hashlib
import json
import os
from pathlib import Path
from typing import Any


def get_file_md5sum(path: Path, chunk_size: int = 8192) -> str:
    """Calculate the MD5 checksum of a file.
    Args:
        path (Path): Path to the file.
        chunk_size (int): Size of chunks to read the file. Default is 8192 bytes.
    Returns:
        str: The MD5 checksum of the file as a hexadecimal string.
    """
    hash_md5 = hashlib.md5()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hash_md5.update(chunk)
    return hash_md5.hexdigest()


def temporary_path_for(path: Path) -> Path:
    # hidden sibling in the same directory, so that the final rename stays on one file system
    return path.with_name(f".{path.name}.tmp")


def write_json_atomically(path: Path, payload: dict[str, Any]) -> None:
    """Writes `payload` as pretty printed JSON to `path`.
    The content is written to a temporary sibling first and renamed on success,
    so a reader never sees a half written document.
    """
    tmp_path = temporary_path_for(path)
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

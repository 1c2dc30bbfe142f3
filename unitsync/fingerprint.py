"""Content fingerprints and byte-level copies of unit files."""

import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

# Vim swap files and backup files written next to the real unit file
EDITOR_ARTIFACT_SUFFIXES = (".swp", "~")

_CHUNK_SIZE = 64 * 1024


def is_editor_artifact(name: str) -> bool:
    return name.endswith(EDITOR_ARTIFACT_SUFFIXES)


def fingerprint(path: Path) -> str:
    """Return the SHA-256 hex digest of a file's contents.

    Raises:
        FileNotFoundError: If the file does not exist
        OSError: On any other read failure
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def fingerprint_if_exists(path: Path) -> Optional[str]:
    """Like fingerprint() but returns None when the file does not exist."""
    try:
        return fingerprint(path)
    except FileNotFoundError:
        return None


def copy_file(src: Path, dest: Path) -> None:
    """Copy src bytes verbatim over dest.

    The bytes go to a temporary file next to dest which then replaces it, so
    readers of dest see either the old or the new content, never a mix.
    """
    dest = Path(dest)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    try:
        with os.fdopen(fd, "wb") as destf, open(src, "rb") as srcf:
            shutil.copyfileobj(srcf, destf)
        shutil.copymode(src, tmp_name)
        os.replace(tmp_name, dest)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

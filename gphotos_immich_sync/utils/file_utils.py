"""File utilities for Google Photos to Immich sync."""

import json
import logging
import mimetypes
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def safe_filename(filename: str) -> str:
    """Make a source filename usable as a local file name.

    Args:
        filename: Filename as reported by Google Photos

    Returns:
        The filename with path separators and control characters replaced
    """
    name = os.path.basename(filename.replace("\\", "/"))
    name = re.sub(r"[\x00-\x1f/]", "_", name).strip()
    if name in ("", ".", ".."):
        return "unnamed"
    return name


def guess_mime_type(path: PathLike, default: Optional[str] = None) -> str:
    """Guess a file's MIME type from its extension."""
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or default or "application/octet-stream"


def write_json_atomic(path: PathLike, data: Any) -> None:
    """Write JSON to ``path`` so readers never see a half-written file.

    The payload goes to a temporary file in the same directory which then
    replaces the target.

    Args:
        path: Destination file
        data: JSON-serialisable object
    """
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def remove_file(path: PathLike) -> None:
    """Delete a local file if it exists, logging instead of raising."""
    path = Path(path)
    try:
        path.unlink()
        logger.debug("Deleted temporary file %s", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to delete temporary file %s: %s", path, e)


@contextmanager
def run_temp_dir(base_dir: PathLike) -> Iterator[Path]:
    """Create a temporary download directory under ``base_dir`` for one run."""
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(dir=str(base_dir), prefix="run-") as tmp:
        yield Path(tmp)


@contextmanager
def scoped_file(path: PathLike) -> Iterator[Path]:
    """Yield ``path`` and delete it on exit, whatever happened inside."""
    path = Path(path)
    try:
        yield path
    finally:
        remove_file(path)

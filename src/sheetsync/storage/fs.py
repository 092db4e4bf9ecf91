"""On-disk layout of a sheetsync project and crash-safe writes into it."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

STORE_DIR = ".sheetsync"
STORE_ROOT_ENV = "SHEETSYNC_ROOT"
STORE_SUBDIRS: tuple[str, ...] = ("docs", "locks")


class StoreRootError(Exception):
    """SHEETSYNC_ROOT names something that is not a sheetsync project."""


def _sync_dir(directory: Path) -> None:
    # Best effort: not every filesystem accepts fsync on a directory fd.
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _write_fully(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]


def atomic_write(path: Path, content: str | bytes) -> None:
    """Replace *path* with *content* so readers see the old or new file, never half.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    directory = path.parent
    if not directory.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {directory}")

    data = content if isinstance(content, bytes) else content.encode("utf-8")
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".tmp.")
    fd_open = True
    try:
        _write_fully(fd, data)
        os.fsync(fd)
        os.close(fd)
        fd_open = False
        os.replace(tmp_name, path)
    except BaseException:
        if fd_open:
            os.close(fd)
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    _sync_dir(directory)


def ensure_store_dirs(root: Path) -> Path:
    """Create ``<root>/.sheetsync/{docs,locks}`` and return the store dir."""
    store_dir = root / STORE_DIR
    for name in STORE_SUBDIRS:
        (store_dir / name).mkdir(parents=True, exist_ok=True)
    return store_dir


def _root_from_env(value: str) -> Path:
    if not value:
        raise StoreRootError(f"{STORE_ROOT_ENV} is set but empty")
    root = Path(value)
    if not root.is_dir():
        raise StoreRootError(f"{STORE_ROOT_ENV} names a directory that does not exist: {value}")
    if not (root / STORE_DIR).is_dir():
        raise StoreRootError(f"{STORE_ROOT_ENV} has no {STORE_DIR}/ inside: {value}")
    return root


def find_root(start: Path | None = None) -> Path | None:
    """Locate the project that owns *start* (default: the cwd).

    An explicit ``SHEETSYNC_ROOT`` takes precedence; otherwise the nearest
    ancestor holding ``.sheetsync/`` is returned, or ``None``.
    """
    env_value = os.environ.get(STORE_ROOT_ENV)
    if env_value is not None:
        return _root_from_env(env_value)

    here = (start or Path.cwd()).resolve()
    for candidate in (here, *here.parents):
        if (candidate / STORE_DIR).is_dir():
            return candidate
    return None

import errno
import os
import shutil
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from .. import config
from ..exceptions import FileOperationError, HashMismatch, RenameCollision
from ..scanning.hasher import FileHasher


def _make_parents(directory: Path) -> List[Path]:
    """mkdir -p that returns the directories it created, deepest first."""
    missing = []
    current = directory
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent

    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        _remove_empty_dirs(missing)
        raise FileOperationError(f"Cannot create {directory}: {e}") from e
    return missing


def _remove_empty_dirs(dirs: List[Path]):
    for d in dirs:
        try:
            d.rmdir()
        except FileNotFoundError:
            continue
        except OSError as e:
            # Something else landed in it; leave it and its parents alone
            logging.debug(f"Keeping directory {d}: {e}")
            break


class FileMover:
    """
    Copy and move primitives that never leave a half-written file at the
    destination name and never overwrite an existing file. Directories
    created for a destination are removed again when the operation fails.
    """

    def __init__(self, hasher: Optional[FileHasher] = None):
        self.hasher = hasher or FileHasher()

    def temp_path_for(self, dest: Path) -> Path:
        """Temp file in the destination directory, so the final rename stays on one volume."""
        return dest.parent / f"{config.TEMP_PREFIX}{dest.name}.{uuid.uuid4().hex[:8]}{config.TEMP_SUFFIX}"

    def copy_verified(self, src: Path, dest: Path, expected_hash: str):
        """
        src -> temp -> verify hash -> os.replace onto dest.
        The temp file is gone afterwards whatever happens.
        """
        src, dest = Path(src), Path(dest)
        if dest.exists():
            raise RenameCollision(f"Destination already exists: {dest}")

        created = _make_parents(dest.parent)
        tmp = self.temp_path_for(dest)
        ok = False
        try:
            shutil.copy2(src, tmp)
            actual = self.hasher.compute_hash(tmp)
            if actual != expected_hash:
                raise HashMismatch(src, expected_hash, actual)
            if dest.exists():
                raise RenameCollision(f"Destination appeared during copy: {dest}")
            os.replace(tmp, dest)
            ok = True
        except OSError as e:
            raise FileOperationError(f"Failed to copy {src} -> {dest}: {e}") from e
        finally:
            tmp.unlink(missing_ok=True)
            if not ok:
                _remove_empty_dirs(created)

    def move(self, src: Path, dest: Path, expected_hash: str) -> str:
        """
        Rename when src and dest share a volume; otherwise verified copy then
        delete. Returns "rename" or "copy" for logging.
        """
        src, dest = Path(src), Path(dest)
        if dest.exists():
            raise RenameCollision(f"Destination already exists: {dest}")
        if not src.exists():
            raise FileOperationError(f"Source file is missing: {src}")

        created = _make_parents(dest.parent)
        try:
            os.rename(src, dest)
            return "rename"
        except OSError as e:
            if e.errno != errno.EXDEV:
                _remove_empty_dirs(created)
                raise FileOperationError(f"Failed to move {src} -> {dest}: {e}") from e

        logging.debug(f"Cross-volume move {src} -> {dest}")
        try:
            self.copy_verified(src, dest, expected_hash)
        except Exception:
            _remove_empty_dirs(created)
            raise
        try:
            src.unlink()
        except OSError as e:
            # Keep exactly one copy: drop the new one and report
            dest.unlink(missing_ok=True)
            _remove_empty_dirs(created)
            raise FileOperationError(f"Copied {src} but could not remove it: {e}") from e
        return "copy"

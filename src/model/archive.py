"""Archive and checksum helpers shared by packages, jobs and licenses.

All helpers stream their input: files are read in fixed-size chunks and
closed before returning.
"""

import contextlib
import gzip
import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Optional, Union

from model.errors import ArchiveError, ChecksumMismatchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class HashingReader:
    """File-like wrapper feeding every byte read through a hash."""

    def __init__(self, fileobj: BinaryIO, hasher=None):
        self._fileobj = fileobj
        self.hasher = hasher or hashlib.sha1()

    def read(self, size: int = -1) -> bytes:
        data = self._fileobj.read(size)
        self.hasher.update(data)
        return data

    def drain(self) -> None:
        """Consume the rest of the stream so the hash covers all of it."""
        while self.read(CHUNK_SIZE):
            pass

    def hexdigest(self) -> str:
        return self.hasher.hexdigest()


def file_sha1(path: Union[str, Path]) -> str:
    """Return the lower-case hex SHA-1 of a file, read in chunks."""
    hasher = hashlib.sha1()
    try:
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                hasher.update(chunk)
    except OSError as e:
        raise ArchiveError(path, f"could not be read: {e.strerror or e}") from e
    return hasher.hexdigest()


def validate_sha1(path: Union[str, Path], expected: str) -> None:
    """Raise ChecksumMismatchError unless the file at path hashes to expected."""
    actual = file_sha1(path)
    if actual != expected:
        raise ChecksumMismatchError(path, expected, actual)
    logger.debug(f"{path} matches sha1 {expected}")


def targz_iterate(
    fileobj: BinaryIO,
    filename: Union[str, Path],
    fn: Callable[[tarfile.TarFile, tarfile.TarInfo], None],
) -> None:
    """Call fn for every member of a gzip-compressed tar stream.

    The stream is read strictly front to back, so fileobj may be a
    HashingReader. Decoding errors are reported against filename.
    """
    try:
        with gzip.GzipFile(fileobj=fileobj, mode='rb') as gz, \
                tarfile.open(fileobj=gz, mode='r|') as tar:
            for member in tar:
                fn(tar, member)
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        raise ArchiveError(filename, f"could not be read: {e}") from e
    except tarfile.TarError as e:
        raise ArchiveError(filename, f"tar'd files failed to read: {e}") from e


def _safe_relative_path(member_name: str) -> Optional[Path]:
    """Return a sanitized relative extraction path, or None if unsafe."""
    normalized = member_name.replace('\\', '/')
    if normalized.startswith('/'):
        return None

    # BOSH archives are built with "./" prefixed members
    parts = [p for p in PurePosixPath(normalized).parts if p not in ('', '.')]
    if not parts or '..' in parts:
        return None
    if parts[0].endswith(':'):
        return None

    return Path(*parts)


def _is_within_root(root: Path, target: Path) -> bool:
    """Check whether target resolves under root."""
    try:
        return target.resolve().is_relative_to(root)
    except OSError:
        return False


def extract_tar(archive: Union[str, Path], dest_dir: Union[str, Path], prefix: str) -> Path:
    """Extract a (possibly compressed) tar archive into a fresh subdirectory.

    Args:
        archive: Path to the archive; gzip, bzip2, xz or no compression
        dest_dir: Existing directory that receives the new subdirectory
        prefix: Name prefix for the new subdirectory

    Returns:
        Path of the directory the archive was extracted into

    Raises:
        ArchiveError: If the destination cannot be created or the archive
            cannot be read
    """
    try:
        target = Path(tempfile.mkdtemp(prefix=f'{prefix}-', dir=dest_dir))
    except OSError as e:
        raise ArchiveError(dest_dir, f"cannot create extraction directory: {e.strerror or e}") from e

    root = target.resolve()
    files_count = 0
    try:
        with tarfile.open(archive, 'r:*') as tar:
            for member in tar:
                rel_path = _safe_relative_path(member.name)
                if rel_path is None:
                    logger.debug(f"Skipping unsafe member {member.name} in {archive}")
                    continue

                full_path = target / rel_path
                if not _is_within_root(root, full_path):
                    continue

                if member.isdir():
                    full_path.mkdir(parents=True, exist_ok=True)
                    continue
                # Symlinks, hardlinks and devices are not part of package payloads
                if not member.isreg():
                    continue

                src = tar.extractfile(member)
                if src is None:
                    continue

                full_path.parent.mkdir(parents=True, exist_ok=True)
                with src, open(full_path, 'wb') as dst:
                    shutil.copyfileobj(src, dst, CHUNK_SIZE)

                mode = member.mode & 0o777
                if mode:
                    with contextlib.suppress(OSError):
                        os.chmod(full_path, mode)
                files_count += 1
    except tarfile.TarError as e:
        shutil.rmtree(target, ignore_errors=True)
        raise ArchiveError(archive, f"tar extraction failed: {e}") from e
    except (OSError, EOFError, zlib.error) as e:
        shutil.rmtree(target, ignore_errors=True)
        raise ArchiveError(archive, f"extraction failed: {e}") from e

    logger.debug(f"Extracted {files_count} files from {archive} into {target}")
    return target


def read_tar_member(archive: Union[str, Path], member_name: str) -> bytes:
    """Return the content of one member of a (possibly compressed) tar archive.

    Leading "./" is ignored when matching member_name.
    """
    wanted = PurePosixPath(member_name)
    try:
        with tarfile.open(archive, 'r:*') as tar:
            for member in tar:
                if not member.isreg() or PurePosixPath(member.name) != wanted:
                    continue
                src = tar.extractfile(member)
                if src is None:
                    break
                with src:
                    return src.read()
    except tarfile.TarError as e:
        raise ArchiveError(archive, f"tar'd files failed to read: {e}") from e
    except (OSError, EOFError, zlib.error) as e:
        raise ArchiveError(archive, f"could not be read: {e}") from e

    raise ArchiveError(archive, f"archive has no {member_name} entry")

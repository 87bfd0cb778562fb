"""Release license archive loading."""

import logging
import posixpath
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from model.archive import HashingReader, targz_iterate
from model.errors import ArchiveError, ChecksumMismatchError

logger = logging.getLogger(__name__)

# Archive members whose lower-cased name contains one of these are kept
LICENSE_MARKERS = ('license', 'notice')


@dataclass
class License:
    """License and notice files of a release.

    Attributes:
        sha1: Checksum declared in the release manifest ('' if none)
        actual_sha1: Checksum computed from the archive bytes
        files: Content of license/notice files keyed by base filename
        path: Location of the license archive
    """
    sha1: str = ''
    actual_sha1: str = ''
    files: dict[str, bytes] = field(default_factory=dict)
    path: Path = Path()

    @property
    def is_valid(self) -> bool:
        """True when no checksum is declared or it matches the archive."""
        return not self.sha1 or self.sha1 == self.actual_sha1

    def verify(self) -> None:
        """Raise ChecksumMismatchError if the declared checksum does not match."""
        if not self.is_valid:
            raise ChecksumMismatchError(self.path, self.sha1, self.actual_sha1)


def load_license(archive_path: Union[str, Path], declared_sha1: str = '') -> License:
    """Load license files from a gzip-compressed tar archive.

    The archive is hashed while it is decoded, in a single pass.

    Args:
        archive_path: Path to license.tgz
        declared_sha1: Checksum recorded in the release manifest

    Returns:
        License with files and actual_sha1 populated

    Raises:
        ArchiveError: If the archive is missing, unreadable or corrupt
    """
    archive_path = Path(archive_path)
    license_ = License(sha1=declared_sha1, path=archive_path)

    def collect(tar: tarfile.TarFile, member: tarfile.TarInfo) -> None:
        name = member.name.lower()
        if not member.isreg():
            return
        if not any(marker in name for marker in LICENSE_MARKERS):
            return
        src = tar.extractfile(member)
        if src is None:
            return
        with src:
            license_.files[posixpath.basename(member.name)] = src.read()

    try:
        with open(archive_path, 'rb') as f:
            reader = HashingReader(f)
            targz_iterate(reader, archive_path, collect)
            reader.drain()
    except OSError as e:
        raise ArchiveError(archive_path, f"could not be read: {e.strerror or e}") from e

    license_.actual_sha1 = reader.hexdigest()
    logger.debug(
        f"Loaded {len(license_.files)} license files from {archive_path} "
        f"(sha1 {license_.actual_sha1})"
    )
    return license_

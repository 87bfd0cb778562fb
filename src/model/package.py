"""Packages of a release and their dependency graph."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from model import archive
from model.errors import InconsistentReleaseError
from model.fields import get_str, get_str_list, get_version_pair, require_mapping

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Package:
    """A checksummed package archive within a release.

    Attributes:
        name: Package name (unique within its release)
        version: Semantic version (the fingerprint for BOSH packages)
        fingerprint: Content fingerprint from the release manifest
        sha1: SHA-1 of the package archive
        path: Location of the package archive
        release_name: Name of the owning release
        dependency_names: Declared dependency names, verbatim
        dependencies: Resolved sibling packages, same order as dependency_names
    """
    name: str
    version: str
    fingerprint: str
    sha1: str
    path: Path
    release_name: str = ''
    dependency_names: list[str] = field(default_factory=list)
    dependencies: list['Package'] = field(default_factory=list, repr=False)

    @classmethod
    def from_dict(cls, data: dict, index: int, release_name: str, archive_dir: Path) -> 'Package':
        """Create Package from a release manifest "packages" entry.

        Args:
            data: Package record from the release manifest
            index: Position in the packages list (for error messages)
            release_name: Name of the owning release
            archive_dir: Directory holding archives named by sha1
        """
        prefix = f"packages[{index}]"
        require_mapping(data, prefix)
        version, fingerprint = get_version_pair(data, prefix)
        sha1 = get_str(data, 'sha1', f"{prefix}.sha1")
        return cls(
            name=get_str(data, 'name', f"{prefix}.name"),
            version=version,
            fingerprint=fingerprint,
            sha1=sha1,
            path=archive_dir / sha1,
            release_name=release_name,
            dependency_names=get_str_list(data, 'dependencies', f"{prefix}.dependencies", default=[]),
        )

    def validate_sha1(self) -> None:
        """Check the archive against the recorded sha1.

        Raises:
            ChecksumMismatchError: If the archive content does not match
            ArchiveError: If the archive cannot be read
        """
        archive.validate_sha1(self.path, self.sha1)

    def extract(self, dest_dir: Union[str, Path]) -> Path:
        """Unpack the package archive into a new subdirectory of dest_dir."""
        return archive.extract_tar(self.path, dest_dir, self.name)

    def __repr__(self) -> str:
        return f"Package({self.name}, release={self.release_name}, sha1={self.sha1})"


def resolve_dependencies(packages: list[Package], release_name: str) -> None:
    """Link each package's dependency_names to sibling Package objects.

    Raises:
        InconsistentReleaseError: If a dependency name matches no package
    """
    by_name: dict[str, Package] = {}
    for pkg in packages:
        # First declaration wins for duplicate names
        by_name.setdefault(pkg.name, pkg)

    for pkg in packages:
        resolved = []
        for dep_name in pkg.dependency_names:
            dep = by_name.get(dep_name)
            if dep is None:
                raise InconsistentReleaseError(
                    release_name,
                    f"package {pkg.name} depends on {dep_name}, which is not in the release",
                )
            resolved.append(dep)
        pkg.dependencies = resolved
        if resolved:
            logger.debug(f"Package {pkg.name} depends on {', '.join(pkg.dependency_names)}")

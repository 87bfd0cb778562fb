"""Content-addressable version signatures.

All digests are lower-case hex SHA-1. Ordering rules:
- script files: sorted by resolved path
- template entries: sorted "<key>: <value>" strings
- jobs within a role: declaration order (task roles may depend on it)
- packages within a role: deduplicated, sorted by name
- roles within a manifest: sorted by name
"""

import hashlib
import logging
from collections.abc import Iterable, Mapping
from typing import Callable, Optional

from model.archive import CHUNK_SIZE
from model.job import Job
from model.package import Package

logger = logging.getLogger(__name__)


def script_signature(paths: Iterable[str], on_error: Callable[[str, OSError], Exception]) -> str:
    """Hash script path names and contents.

    Args:
        paths: Resolved script file paths; duplicates are ignored
        on_error: Builds the exception to raise when a file cannot be read

    Returns:
        Hex digest over each path string followed by its content, in
        sorted path order
    """
    hasher = hashlib.sha1()
    for path in sorted(set(paths)):
        hasher.update(path.encode('utf-8'))
        try:
            with open(path, 'rb') as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                    hasher.update(chunk)
        except OSError as e:
            raise on_error(path, e) from e
    return hasher.hexdigest()


def template_signature(templates: Mapping[str, str]) -> str:
    """Hash "<key>: <value>" lines in sorted order."""
    hasher = hashlib.sha1()
    for line in sorted(f"{key}: {value}" for key, value in templates.items()):
        hasher.update(line.encode('utf-8'))
    return hasher.hexdigest()


def role_packages(jobs: Iterable[Job]) -> list[Package]:
    """Packages used by jobs, deduplicated and sorted by name.

    Packages are keyed by (release, name) so same-named packages from
    different releases both count.
    """
    unique: dict[tuple[str, str], Package] = {}
    for job in jobs:
        for pkg in job.packages:
            unique.setdefault((pkg.release_name, pkg.name), pkg)
    return [unique[key] for key in sorted(unique, key=lambda k: (k[1], k[0]))]


def role_dev_version(
    jobs: list[Job],
    script_sig: Optional[str] = None,
    template_sig: Optional[str] = None,
) -> str:
    """Aggregate signature of a role's jobs, packages, scripts and templates.

    Each component is appended to the signature string as "\\n<value>";
    the SHA-1 of the whole string is the version.
    """
    parts = [job.sha1 for job in jobs]
    parts.extend(pkg.sha1 for pkg in role_packages(jobs))
    if script_sig is not None:
        parts.append(script_sig)
    if template_sig is not None:
        parts.append(template_sig)

    signature = ''.join(f"\n{part}" for part in parts)
    return hashlib.sha1(signature.encode('utf-8')).hexdigest()


def manifest_dev_version(role_versions: Iterable[tuple[str, str]], extra: str) -> str:
    """Aggregate signature of all roles, seeded with extra.

    Args:
        role_versions: (role name, role dev version) pairs
        extra: Caller-supplied salt hashed first
    """
    hasher = hashlib.sha1()
    hasher.update(extra.encode('utf-8'))
    for _, version in sorted(role_versions, key=lambda rv: rv[0]):
        hasher.update(version.encode('utf-8'))
    return hasher.hexdigest()

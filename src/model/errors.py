"""Exceptions raised while loading releases and role manifests.

Error codes:
- E1xx: structural problems (missing directories/files, bad manifest fields)
- E2xx: referential integrity (unresolvable names, duplicate releases)
- E3xx: integrity checks (checksum mismatches)
- E4xx: I/O and archive decoding
"""

from pathlib import Path
from typing import Union


class ModelError(Exception):
    """Base exception for release and role manifest errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ReleasePathError(ModelError):
    """A required directory or file of a release is missing."""

    def __init__(self, path: Union[str, Path], description: str, expected_dir: bool):
        self.path = Path(path)
        kind = 'a directory' if expected_dir else 'a file'
        super().__init__("E101", f"{description} {path} does not exist or is not {kind}")


class ManifestFieldError(ModelError):
    """A manifest field is missing or has the wrong type."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__("E102", f"{field}: {message}")


class InconsistentReleaseError(ModelError):
    """A release references a package that it does not contain."""

    def __init__(self, release: str, message: str):
        self.release = release
        super().__init__("E201", f"release {release} is internally inconsistent: {message}")


class PackageNotFoundError(ModelError):
    """Package lookup by name failed."""

    def __init__(self, package: str, release: str):
        self.package = package
        self.release = release
        super().__init__("E202", f"Cannot find package {package} in release {release}")


class JobNotFoundError(ModelError):
    """Job lookup by name failed."""

    def __init__(self, job: str, release: str, role: str = ''):
        self.job = job
        self.release = release
        self.role = role
        message = f"Cannot find job {job} in release {release}"
        if role:
            message += f" (referenced by role {role})"
        super().__init__("E203", message)


class UnknownReleaseError(ModelError):
    """A role references a release that was not loaded."""

    def __init__(self, release: str, job: str, role: str):
        self.release = release
        self.job = job
        self.role = role
        super().__init__(
            "E204",
            f"release {release} has not been loaded and is referenced by job {job} in role {role}",
        )


class DuplicateReleaseError(ModelError):
    """The same release name was supplied more than once."""

    def __init__(self, release: str):
        self.release = release
        super().__init__("E205", f"release {release} has been loaded more than once")


class RoleNotFoundError(ModelError):
    """Role lookup by name failed."""

    def __init__(self, role: str):
        self.role = role
        super().__init__("E206", f"Cannot find role {role} in role manifest")


class ChecksumMismatchError(ModelError):
    """Computed SHA-1 does not match the recorded one."""

    def __init__(self, path: Union[str, Path], expected: str, actual: str):
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            "E301",
            f"checksum mismatch for {path}: expected {expected}, got {actual}",
        )


class ArchiveError(ModelError):
    """An archive or file could not be opened, read or decoded."""

    def __init__(self, path: Union[str, Path], message: str):
        self.path = Path(path)
        super().__init__("E401", f"{path}: {message}")


class ScriptNotFoundError(ModelError):
    """A role script could not be read for hashing."""

    def __init__(self, role: str, path: Union[str, Path], reason: str):
        self.role = role
        self.path = Path(path)
        super().__init__("E402", f"script {path} of role {role} could not be read: {reason}")

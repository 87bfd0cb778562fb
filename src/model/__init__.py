"""Release and role model: loading, dependency resolution and versioning."""

from model.errors import (
    ArchiveError,
    ChecksumMismatchError,
    DuplicateReleaseError,
    InconsistentReleaseError,
    JobNotFoundError,
    ManifestFieldError,
    ModelError,
    PackageNotFoundError,
    ReleasePathError,
    RoleNotFoundError,
    ScriptNotFoundError,
    UnknownReleaseError,
)
from model.job import Job, JobProperty, JobTemplate
from model.license import License, load_license
from model.package import Package
from model.release import Release, ReleaseConfig, load_dev_release, load_release
from model.roles import Role, RoleJobRef, RoleManifest, load_role_manifest

__all__ = [
    "ArchiveError",
    "ChecksumMismatchError",
    "DuplicateReleaseError",
    "InconsistentReleaseError",
    "JobNotFoundError",
    "ManifestFieldError",
    "ModelError",
    "PackageNotFoundError",
    "ReleasePathError",
    "RoleNotFoundError",
    "ScriptNotFoundError",
    "UnknownReleaseError",
    "Job",
    "JobProperty",
    "JobTemplate",
    "License",
    "load_license",
    "Package",
    "Release",
    "ReleaseConfig",
    "load_dev_release",
    "load_release",
    "Role",
    "RoleJobRef",
    "RoleManifest",
    "load_role_manifest",
]

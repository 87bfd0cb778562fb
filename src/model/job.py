"""Jobs of a release: properties, templates and package references."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import yaml

from model import archive
from model.errors import InconsistentReleaseError, ManifestFieldError, PackageNotFoundError
from model.fields import (
    get_mapping,
    get_str,
    get_str_list,
    get_version_pair,
    render_scalar,
    require_mapping,
)
from model.package import Package

if TYPE_CHECKING:
    from model.release import Release

logger = logging.getLogger(__name__)

# Name of the job spec inside a BOSH job archive
JOB_SPEC_FILE = 'job.MF'


@dataclass
class JobProperty:
    """A configurable property declared by a job."""
    name: str
    description: str = ''
    default: Any = None


@dataclass
class JobTemplate:
    """A template file rendered into the job's directory at deploy time."""
    source_path: str
    destination_path: str


@dataclass(eq=False)
class Job:
    """An installable unit within a release.

    Attributes:
        name: Job name
        release_name: Name of the owning release
        version: Job version (fingerprint for BOSH jobs)
        fingerprint: Content fingerprint from the release manifest
        sha1: SHA-1 of the job archive
        path: Location of the job archive
        description: Free-form description from the job spec
        properties: Declared properties, in declaration order
        packages: Packages of the owning release used by this job
        templates: Template files shipped by the job
    """
    name: str
    release_name: str
    version: str
    fingerprint: str
    sha1: str
    path: Path
    description: str = ''
    properties: list[JobProperty] = field(default_factory=list)
    packages: list[Package] = field(default_factory=list)
    templates: list[JobTemplate] = field(default_factory=list)

    def validate_sha1(self) -> None:
        """Check the job archive against the recorded sha1."""
        archive.validate_sha1(self.path, self.sha1)

    def extract(self, dest_dir: Union[str, Path]) -> Path:
        """Unpack the job archive into a new subdirectory of dest_dir."""
        return archive.extract_tar(self.path, dest_dir, self.name)

    def __repr__(self) -> str:
        return f"Job({self.name}, release={self.release_name}, sha1={self.sha1})"


def new_job(release: 'Release', data: Any, index: int, archive_dir: Path) -> Job:
    """Create a Job from a release manifest "jobs" entry.

    The job spec (packages, properties, templates) comes from the record
    itself when it lists packages, otherwise from job.MF inside the job
    archive.

    Raises:
        ManifestFieldError: If the record or job spec is malformed
        ArchiveError: If the job archive or its job.MF cannot be read
        InconsistentReleaseError: If the job uses a package not in the release
    """
    prefix = f"jobs[{index}]"
    require_mapping(data, prefix)
    version, fingerprint = get_version_pair(data, prefix)
    sha1 = get_str(data, 'sha1', f"{prefix}.sha1")
    job = Job(
        name=get_str(data, 'name', f"{prefix}.name"),
        release_name=release.name,
        version=version,
        fingerprint=fingerprint,
        sha1=sha1,
        path=archive_dir / sha1,
    )

    if 'packages' in data:
        spec, spec_field = data, prefix
    else:
        spec, spec_field = _load_job_spec(job), f"{job.name}/{JOB_SPEC_FILE}"

    _apply_job_spec(job, release, spec, spec_field)
    logger.debug(
        f"Loaded job {job.name}: {len(job.packages)} packages, "
        f"{len(job.properties)} properties, {len(job.templates)} templates"
    )
    return job


def _load_job_spec(job: Job) -> dict:
    """Read and parse job.MF from the job archive."""
    contents = archive.read_tar_member(job.path, JOB_SPEC_FILE)
    field_name = f"{job.name}/{JOB_SPEC_FILE}"
    try:
        spec = yaml.safe_load(contents)
    except yaml.YAMLError as e:
        raise ManifestFieldError(field_name, f"invalid YAML: {e}") from e
    if spec is None:
        return {}
    return require_mapping(spec, field_name)


def _apply_job_spec(job: Job, release: 'Release', spec: dict, spec_field: str) -> None:
    description = spec.get('description')
    job.description = render_scalar(description, f"{spec_field}.description")

    for pkg_name in get_str_list(spec, 'packages', f"{spec_field}.packages", default=[]):
        try:
            job.packages.append(release.lookup_package(pkg_name))
        except PackageNotFoundError as e:
            raise InconsistentReleaseError(
                release.name, f"job {job.name} uses package {pkg_name}, which is not in the release"
            ) from e

    job.properties = _parse_properties(spec.get('properties'), f"{spec_field}.properties")

    templates = get_mapping(spec, 'templates', f"{spec_field}.templates", default={})
    for source, destination in templates.items():
        job.templates.append(JobTemplate(
            source_path=str(source),
            destination_path=render_scalar(destination, f"{spec_field}.templates.{source}"),
        ))


def _parse_properties(raw: Optional[Any], field_name: str) -> list[JobProperty]:
    """Parse job properties in either list or mapping form.

    List form: [{name, description, default}, ...]
    Mapping form (job.MF): {name: {description, default}, ...}
    """
    if raw is None:
        return []

    properties = []
    if isinstance(raw, dict):
        for name, definition in raw.items():
            definition = definition or {}
            require_mapping(definition, f"{field_name}.{name}")
            properties.append(JobProperty(
                name=str(name),
                description=render_scalar(definition.get('description'), f"{field_name}.{name}.description"),
                default=definition.get('default'),
            ))
        return properties

    if not isinstance(raw, list):
        raise ManifestFieldError(field_name, f"expected list or mapping, got {type(raw).__name__}")

    for i, definition in enumerate(raw):
        require_mapping(definition, f"{field_name}[{i}]")
        properties.append(JobProperty(
            name=get_str(definition, 'name', f"{field_name}[{i}].name"),
            description=render_scalar(definition.get('description'), f"{field_name}[{i}].description"),
            default=definition.get('default'),
        ))
    return properties

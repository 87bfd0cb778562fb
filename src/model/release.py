"""Release loading for final and dev BOSH releases.

Final release layout:
    <path>/release.MF
    <path>/license.tgz
    <path>/packages/<sha1>
    <path>/jobs/<sha1>

Dev release layout (archives live in a cache directory, named by sha1):
    <path>/dev_releases/<name>/<name>-<version>.yml
    <path>/dev_releases/<name>/index.yml
    <path>/config/dev.yml, <path>/config/final.yml
    <path>/license.tgz, <path>/packages/, <path>/jobs/
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import yaml

from model.errors import (
    JobNotFoundError,
    ManifestFieldError,
    ModelError,
    PackageNotFoundError,
    ReleasePathError,
)
from model.fields import get_bool, get_list, get_mapping, get_str, render_scalar, require_mapping
from model.job import Job, new_job
from model.license import License, load_license
from model.package import Package, resolve_dependencies
from model.yamlfix import fix_binary_tags

logger = logging.getLogger(__name__)

JOBS_DIR = 'jobs'
PACKAGES_DIR = 'packages'
LICENSE_ARCHIVE = 'license.tgz'
MANIFEST_FILE = 'release.MF'
DEV_RELEASES_DIR = 'dev_releases'
DEV_INDEX_FILE = 'index.yml'


@dataclass
class ReleaseConfig:
    """A property name aggregated across all jobs of a release."""
    name: str
    description: str = ''
    usage_count: int = 0
    jobs: list[Job] = field(default_factory=list)


@dataclass(eq=False)
class Release:
    """A BOSH release: packages, jobs and license metadata.

    Build instances with Release.load() or Release.load_dev(); a Release is
    only returned once fully loaded.

    Attributes:
        path: Release directory
        name: Release name (identity within a loaded set)
        version: Release version
        commit_hash: Commit the release was built from
        uncommitted_changes: Whether the working tree was dirty at build time
        dev: True for dev releases
        dev_cache_dir: Directory holding dev archives named by sha1
        packages: Packages in manifest order
        jobs: Jobs in manifest order
        license: License files and checksums
    """
    path: Path
    name: str = ''
    version: str = ''
    commit_hash: str = ''
    uncommitted_changes: bool = False
    dev: bool = False
    dev_cache_dir: Optional[Path] = None
    packages: list[Package] = field(default_factory=list)
    jobs: list[Job] = field(default_factory=list)
    license: License = field(default_factory=License)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Release':
        """Load a final release from its directory.

        Raises:
            ModelError: If the release layout, manifest or archives are invalid
        """
        release = cls(path=Path(path))
        release._load()
        return release

    @classmethod
    def load_dev(
        cls,
        path: Union[str, Path],
        name: str = '',
        version: str = '',
        cache_dir: Optional[Union[str, Path]] = None,
    ) -> 'Release':
        """Load a dev release from a release repository.

        Args:
            path: Release repository directory
            name: Release name; defaults to the name in config/dev.yml or
                config/final.yml
            version: Dev version; defaults to the latest in the dev index
            cache_dir: Archive cache; defaults to the configured BOSH cache

        Raises:
            ModelError: If the release layout, manifest or archives are invalid
            ConfigError: If no cache_dir is given and configuration is invalid
        """
        if cache_dir is None:
            from config import load_config
            cache_dir = load_config().bosh_cache_dir

        release = cls(path=Path(path), name=name, version=version, dev=True,
                      dev_cache_dir=Path(cache_dir))
        validate_path(release.path, True, "release directory")
        if not release.name:
            release.name = release._default_dev_release_name()
        if not release.version:
            release.version = release._default_dev_release_version()
        validate_path(release.dev_cache_dir, True, "BOSH cache directory")
        release._load()
        return release

    @property
    def manifest_file_path(self) -> Path:
        if self.dev:
            return self._dev_manifests_dir / f'{self.name}-{self.version}.yml'
        return self.path / MANIFEST_FILE

    @property
    def packages_dir_path(self) -> Path:
        return self.path / PACKAGES_DIR

    @property
    def jobs_dir_path(self) -> Path:
        return self.path / JOBS_DIR

    @property
    def license_archive_path(self) -> Path:
        return self.path / LICENSE_ARCHIVE

    @property
    def _dev_manifests_dir(self) -> Path:
        return self.path / DEV_RELEASES_DIR / self.name

    @property
    def _archive_dir(self) -> Path:
        if self.dev and self.dev_cache_dir is not None:
            return self.dev_cache_dir
        return self.path

    def lookup_package(self, name: str) -> Package:
        """Find a package by name; the first match wins.

        Raises:
            PackageNotFoundError: If no package has that name
        """
        for pkg in self.packages:
            if pkg.name == name:
                return pkg
        raise PackageNotFoundError(name, self.name)

    def lookup_job(self, name: str) -> Job:
        """Find a job by name; the first match wins.

        Raises:
            JobNotFoundError: If no job has that name
        """
        for job in self.jobs:
            if job.name == name:
                return job
        raise JobNotFoundError(name, self.name)

    def get_unique_configs(self) -> dict[str, ReleaseConfig]:
        """Aggregate job properties by name across all jobs."""
        result: dict[str, ReleaseConfig] = {}
        for job in self.jobs:
            for prop in job.properties:
                config = result.get(prop.name)
                if config is None:
                    config = result[prop.name] = ReleaseConfig(
                        name=prop.name,
                        description=prop.description,
                    )
                config.usage_count += 1
                config.jobs.append(job)
        return result

    def validate_packages(self) -> list[ModelError]:
        """Check every package archive against its recorded sha1.

        Returns:
            List of errors (empty = all archives valid)
        """
        errors: list[ModelError] = []
        for pkg in self.packages:
            try:
                pkg.validate_sha1()
            except ModelError as e:
                logger.warning(f"Package {pkg.name} of release {self.name}: {e}")
                errors.append(e)
        return errors

    def _load(self) -> None:
        self._validate_path_structure()
        manifest = self._read_manifest()
        self._load_metadata(manifest)
        self._load_license(manifest)
        self._load_packages(manifest)
        resolve_dependencies(self.packages, self.name)
        self._load_jobs(manifest)
        logger.info(
            f"Loaded release {self.name} {self.version} from {self.path} "
            f"({len(self.packages)} packages, {len(self.jobs)} jobs)"
        )

    def _validate_path_structure(self) -> None:
        validate_path(self.path, True, "release directory")
        validate_path(self.manifest_file_path, False, "release manifest file")
        validate_path(self.packages_dir_path, True, "packages directory")
        validate_path(self.jobs_dir_path, True, "jobs directory")

    def _read_manifest(self) -> dict:
        path = self.manifest_file_path
        try:
            contents = path.read_bytes()
        except OSError as e:
            raise ReleasePathError(path, "release manifest file", False) from e

        try:
            manifest = yaml.safe_load(fix_binary_tags(contents))
        except yaml.YAMLError as e:
            raise ManifestFieldError(str(path), f"invalid YAML: {e}") from e

        if not isinstance(manifest, dict):
            raise ManifestFieldError(str(path), "release manifest must be a YAML mapping")
        return manifest

    def _load_metadata(self, manifest: dict) -> None:
        name = get_str(manifest, 'name')
        version = get_str(manifest, 'version')
        self.commit_hash = get_str(manifest, 'commit_hash')
        self.uncommitted_changes = get_bool(manifest, 'uncommitted_changes')

        if self.dev:
            if name != self.name:
                raise ManifestFieldError('name', f"expected {self.name}, manifest says {name}")
            if version != self.version:
                raise ManifestFieldError('version', f"expected {self.version}, manifest says {version}")
        self.name = name
        self.version = version

    def _load_license(self, manifest: dict) -> None:
        info = get_mapping(manifest, 'license', default={})
        declared = get_str(info, 'sha1', 'license.sha1', default='')
        self.license = load_license(self.license_archive_path, declared)

    def _load_packages(self, manifest: dict) -> None:
        archive_dir = self._archive_dir
        if not self.dev:
            archive_dir = archive_dir / PACKAGES_DIR
        self.packages = [
            Package.from_dict(data, i, self.name, archive_dir)
            for i, data in enumerate(get_list(manifest, 'packages', default=[]))
        ]

    def _load_jobs(self, manifest: dict) -> None:
        archive_dir = self._archive_dir
        if not self.dev:
            archive_dir = archive_dir / JOBS_DIR
        self.jobs = [
            new_job(self, data, i, archive_dir)
            for i, data in enumerate(get_list(manifest, 'jobs', default=[]))
        ]

    def _default_dev_release_name(self) -> str:
        """Release name from config/dev.yml, falling back to config/final.yml."""
        candidates = [
            (self.path / 'config' / 'dev.yml', ('dev_name',)),
            (self.path / 'config' / 'final.yml', ('final_name', 'name')),
        ]
        for config_file, keys in candidates:
            if not config_file.is_file():
                continue
            data = _parse_yaml(config_file)
            for key in keys:
                if data.get(key):
                    return get_str(data, key, f"{config_file.name}.{key}")

        raise ReleasePathError(
            self.path / 'config' / 'final.yml',
            "release name configuration (dev_name/final_name/name)",
            False,
        )

    def _default_dev_release_version(self) -> str:
        """Latest version listed in dev_releases/<name>/index.yml."""
        index_path = self._dev_manifests_dir / DEV_INDEX_FILE
        validate_path(index_path, False, "dev release index")
        builds = get_mapping(_parse_yaml(index_path), 'builds', 'index.builds', default={})

        versions = []
        for build_id, build in builds.items():
            field_name = f"index.builds.{build_id}"
            build = require_mapping(build or {}, field_name)
            versions.append(render_scalar(build.get('version'), f"{field_name}.version"))
        versions = [v for v in versions if v]
        if not versions:
            raise ManifestFieldError(str(index_path), "no dev release versions found")

        return max(versions, key=_version_key)


def validate_path(path: Optional[Path], should_be_dir: bool, description: str) -> None:
    """Check that path exists and is a directory (or a regular file).

    Raises:
        ReleasePathError: If the check fails
    """
    if path is None:
        raise ReleasePathError('<unset>', description, should_be_dir)
    if should_be_dir and not path.is_dir():
        raise ReleasePathError(path, description, should_be_dir)
    if not should_be_dir and not path.is_file():
        raise ReleasePathError(path, description, should_be_dir)


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file that must contain a mapping."""
    try:
        with open(path, 'rb') as f:
            data = yaml.safe_load(fix_binary_tags(f.read()))
    except OSError as e:
        raise ReleasePathError(path, "YAML file", False) from e
    except yaml.YAMLError as e:
        raise ManifestFieldError(str(path), f"invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestFieldError(str(path), "expected a YAML mapping")
    return data


def _version_key(version: str) -> list[tuple[int, str]]:
    """Natural sort key: digit runs compare numerically ("2+dev.10" > "2+dev.9")."""
    key = []
    for part in re.split(r'(\d+)', version):
        if not part:
            continue
        if part.isdigit():
            key.append((int(part), ''))
        else:
            key.append((-1, part))
    return key


def load_release(path: Union[str, Path]) -> Release:
    """Load a final release (see Release.load)."""
    return Release.load(path)


def load_dev_release(
    path: Union[str, Path],
    name: str = '',
    version: str = '',
    cache_dir: Optional[Union[str, Path]] = None,
) -> Release:
    """Load a dev release (see Release.load_dev)."""
    return Release.load_dev(path, name, version, cache_dir)


"""Role manifest loading and role versioning.

A role manifest groups jobs from loaded releases into roles:

    roles:
    - name: myrole
      type: bosh            # optional; bosh (default) or bosh-task
      jobs:
      - name: ntpd
        release_name: ntp
      environment_scripts: [scripts/environ.sh]
      scripts: [scripts/setup.sh, /opt/in/container.sh]
      post_config_scripts: []
      configuration:
        templates:
          properties.ntp_conf: "((NTP_CONF))"
    configuration:
      templates:
        properties.global: value
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import yaml

from model import signature
from model.errors import (
    DuplicateReleaseError,
    JobNotFoundError,
    ManifestFieldError,
    RoleNotFoundError,
    ScriptNotFoundError,
    UnknownReleaseError,
)
from model.fields import get_list, get_mapping, get_str, get_str_list, render_scalar, require_mapping
from model.job import Job
from model.release import Release

logger = logging.getLogger(__name__)

BOSH_TYPE = 'bosh'
BOSH_TASK_TYPE = 'bosh-task'
SUPPORTED_ROLE_TYPES = {BOSH_TYPE, BOSH_TASK_TYPE}

_NULL_TAG = 'tag:yaml.org,2002:null'


class _TextLoader(yaml.SafeLoader):
    """SafeLoader that keeps plain scalars as written.

    Only null is resolved implicitly; "yes", "010", "0x1F" or "2020-01-01"
    stay strings so template values hash exactly as they appear in the file.
    """


_TextLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag == _NULL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass
class RoleJobRef:
    """Reference from a role to a job in a named release."""
    name: str
    release_name: str

    @classmethod
    def from_dict(cls, data: Any, field_name: str) -> 'RoleJobRef':
        require_mapping(data, field_name)
        return cls(
            name=get_str(data, 'name', f"{field_name}.name"),
            release_name=get_str(data, 'release_name', f"{field_name}.release_name"),
        )


def _parse_templates(data: dict, field_name: str) -> dict[str, str]:
    """Read configuration.templates as a str -> str mapping."""
    configuration = get_mapping(data, 'configuration', f"{field_name}.configuration", default={})
    templates = get_mapping(configuration, 'templates', f"{field_name}.configuration.templates", default={})
    return {
        str(key): render_scalar(value, f"{field_name}.configuration.templates.{key}")
        for key, value in templates.items()
    }


@dataclass
class Role:
    """A group of jobs deployed together as one unit.

    Attributes:
        name: Role name
        type: bosh or bosh-task
        job_refs: Declared job references, in manifest order
        jobs: Resolved jobs; jobs[i] resolves job_refs[i]
        environ_scripts: Scripts sourced for the environment
        scripts: Startup scripts
        post_config_scripts: Scripts run after configuration
        templates: Role templates (merged with global defaults after load)
        base_dir: Directory relative script paths are resolved against
    """
    name: str
    type: str = BOSH_TYPE
    job_refs: list[RoleJobRef] = field(default_factory=list)
    jobs: list[Job] = field(default_factory=list)
    environ_scripts: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    post_config_scripts: list[str] = field(default_factory=list)
    templates: dict[str, str] = field(default_factory=dict)
    base_dir: Path = Path('.')

    @classmethod
    def from_dict(cls, data: Any, index: int, base_dir: Path) -> 'Role':
        """Create Role from a role manifest "roles" entry."""
        field_name = f"roles[{index}]"
        require_mapping(data, field_name)
        field_name = f"roles[{index}] ({data.get('name', 'unnamed')})"
        role_type = data.get('type')
        return cls(
            name=get_str(data, 'name', f"roles[{index}].name"),
            type=render_scalar(role_type, f"{field_name}.type") or BOSH_TYPE,
            job_refs=[
                RoleJobRef.from_dict(ref, f"{field_name}.jobs[{i}]")
                for i, ref in enumerate(get_list(data, 'jobs', f"{field_name}.jobs", default=[]))
            ],
            environ_scripts=get_str_list(data, 'environment_scripts', f"{field_name}.environment_scripts", default=[]),
            scripts=get_str_list(data, 'scripts', f"{field_name}.scripts", default=[]),
            post_config_scripts=get_str_list(data, 'post_config_scripts', f"{field_name}.post_config_scripts", default=[]),
            templates=_parse_templates(data, field_name),
            base_dir=base_dir,
        )

    @property
    def is_task(self) -> bool:
        return self.type == BOSH_TASK_TYPE

    def get_script_paths(self) -> dict[str, Path]:
        """Map each relative script path to its location on disk.

        Absolute paths refer to files already inside the container and are
        left out.
        """
        result: dict[str, Path] = {}
        for script_list in (self.environ_scripts, self.scripts, self.post_config_scripts):
            for script in script_list:
                if os.path.isabs(script):
                    continue
                result[script] = Path(os.path.normpath(os.path.join(self.base_dir, script)))
        return result

    def get_script_signatures(self) -> str:
        """SHA-1 of all relative script file names and contents.

        Raises:
            ScriptNotFoundError: If a script cannot be read
        """
        paths = [str(p) for p in self.get_script_paths().values()]
        return signature.script_signature(
            paths,
            lambda path, e: ScriptNotFoundError(self.name, path, e.strerror or str(e)),
        )

    def get_template_signatures(self) -> str:
        """SHA-1 of the merged templates."""
        return signature.template_signature(self.templates)

    def get_role_dev_version(self) -> str:
        """Aggregate signature of the role's jobs, packages, scripts and templates."""
        declared_scripts = self.environ_scripts or self.scripts or self.post_config_scripts
        script_sig = self.get_script_signatures() if declared_scripts else None
        template_sig = self.get_template_signatures() if self.templates else None
        version = signature.role_dev_version(self.jobs, script_sig, template_sig)
        logger.debug(f"Role {self.name} dev version {version}")
        return version

    def merge_templates(self, defaults: dict[str, str]) -> None:
        """Overlay role templates on the global defaults (role wins)."""
        merged = dict(defaults)
        merged.update(self.templates)
        self.templates = merged


@dataclass
class RoleManifest:
    """Roles of a deployment plus global configuration defaults.

    Attributes:
        roles: Supported roles in manifest order
        templates: Global default templates
        manifest_path: File the manifest was loaded from
    """
    roles: list[Role] = field(default_factory=list)
    templates: dict[str, str] = field(default_factory=dict)
    manifest_path: Path = Path('.')

    @classmethod
    def load(cls, manifest_path: Union[str, Path], releases: list[Release]) -> 'RoleManifest':
        """Load a role manifest and bind its jobs to the given releases.

        Raises:
            DuplicateReleaseError: If two releases share a name
            ManifestFieldError: If the manifest cannot be read or is malformed
            UnknownReleaseError: If a role references a release not supplied
            JobNotFoundError: If a role references a job its release lacks
        """
        manifest_path = Path(manifest_path)

        mapped_releases: dict[str, Release] = {}
        for release in releases:
            if release.name in mapped_releases:
                raise DuplicateReleaseError(release.name)
            mapped_releases[release.name] = release

        data = _read_manifest(manifest_path)
        base_dir = manifest_path.parent
        manifest = cls(
            roles=[
                Role.from_dict(role, i, base_dir)
                for i, role in enumerate(get_list(data, 'roles', default=[]))
            ],
            templates=_parse_templates(data, 'manifest'),
            manifest_path=manifest_path,
        )

        # Back to front so removal does not disturb the remaining indexes
        for i in range(len(manifest.roles) - 1, -1, -1):
            role = manifest.roles[i]
            if role.type not in SUPPORTED_ROLE_TYPES:
                logger.warning(f"Skipping role {role.name}: unsupported type {role.type}")
                del manifest.roles[i]

        for role in manifest.roles:
            role.jobs = [
                _resolve_job(ref, role, mapped_releases) for ref in role.job_refs
            ]
            role.merge_templates(manifest.templates)

        logger.info(f"Loaded {len(manifest.roles)} roles from {manifest_path}")
        return manifest

    def lookup_role(self, name: str) -> Role:
        """Find a role by name.

        Raises:
            RoleNotFoundError: If no role has that name
        """
        for role in self.roles:
            if role.name == name:
                return role
        raise RoleNotFoundError(name)

    def get_role_manifest_dev_package_version(self, extra: str = '') -> str:
        """Aggregate signature of all roles, seeded with extra."""
        return signature.manifest_dev_version(
            ((role.name, role.get_role_dev_version()) for role in self.roles),
            extra,
        )


def _read_manifest(path: Path) -> dict:
    try:
        with open(path, 'rb') as f:
            data = yaml.load(f, Loader=_TextLoader)
    except OSError as e:
        raise ManifestFieldError(str(path), f"cannot read role manifest: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ManifestFieldError(str(path), f"invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestFieldError(str(path), "role manifest must be a YAML mapping")
    return data


def _resolve_job(ref: RoleJobRef, role: Role, releases: dict[str, Release]) -> Job:
    release = releases.get(ref.release_name)
    if release is None:
        raise UnknownReleaseError(ref.release_name, ref.name, role.name)
    try:
        return release.lookup_job(ref.name)
    except JobNotFoundError as e:
        raise JobNotFoundError(ref.name, ref.release_name, role.name) from e


def load_role_manifest(manifest_path: Union[str, Path], releases: list[Release]) -> RoleManifest:
    """Load a role manifest (see RoleManifest.load)."""
    return RoleManifest.load(manifest_path, releases)

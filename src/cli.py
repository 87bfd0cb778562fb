#!/usr/bin/env python3
"""CLI entry point for rolepack.

Noun-action subcommands:
- release show PATH: Print release metadata, packages and jobs
- release verify PATH: Check package archives and license checksum
- release extract PATH: Unpack package and job archives into a work directory
- roles versions -m ROLE_MANIFEST -r RELEASE...: Print role dev versions
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config import ConfigError, load_config
from model import ModelError, Release, RoleManifest

logger = logging.getLogger(__name__)

NOUN_COMMANDS = {
    "release": "Inspect, verify and extract releases (show/verify/extract)",
    "roles": "Role manifest versions (versions)",
}


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    stderr_handler = logging.StreamHandler(sys.stderr)
    if json_output:
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    else:
        stderr_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--config',
        help='Path to rolepack config file',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parser.add_argument(
        '--json',
        dest='json_output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )


def _release_parser(verb: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f'rolepack release {verb}', description=description)
    parser.add_argument('path', help='Release directory')
    parser.add_argument(
        '--dev',
        action='store_true',
        help='Load as a dev release (manifest under dev_releases/)',
    )
    parser.add_argument('--name', default='', help='Dev release name')
    parser.add_argument('--version', default='', help='Dev release version')
    parser.add_argument('--cache-dir', help='Dev release archive cache (default from config)')
    _add_common_args(parser)
    return parser


def _load_release(args) -> Release:
    if args.dev:
        cache_dir = args.cache_dir or load_config(args.config).bosh_cache_dir
        return Release.load_dev(args.path, args.name, args.version, cache_dir)
    return Release.load(args.path)


def release_show_main(argv: list) -> int:
    """Handle 'release show' verb."""
    parser = _release_parser('show', 'Print release metadata, packages and jobs')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    try:
        release = _load_release(args)
    except (ModelError, ConfigError) as e:
        print(f"Error loading release: {e}", file=sys.stderr)
        return 1

    if args.json_output:
        print(json.dumps(_release_to_dict(release), indent=2))
        return 0

    print(f"Release {release.name} {release.version}")
    print(f"  commit: {release.commit_hash}{' (dirty)' if release.uncommitted_changes else ''}")
    print(f"  license files: {', '.join(sorted(release.license.files)) or 'none'}")
    print(f"  packages ({len(release.packages)}):")
    for pkg in release.packages:
        deps = f" -> {', '.join(pkg.dependency_names)}" if pkg.dependency_names else ''
        print(f"    {pkg.name} {pkg.sha1}{deps}")
    print(f"  jobs ({len(release.jobs)}):")
    for job in release.jobs:
        print(f"    {job.name} {job.sha1} [{', '.join(p.name for p in job.packages)}]")
    return 0


def release_verify_main(argv: list) -> int:
    """Handle 'release verify' verb.

    Checks every package archive against its sha1 and the license archive
    against the checksum declared in the manifest.
    """
    parser = _release_parser('verify', 'Verify package and license checksums')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    try:
        release = _load_release(args)
    except (ModelError, ConfigError) as e:
        print(f"Error loading release: {e}", file=sys.stderr)
        return 1

    errors = [str(e) for e in release.validate_packages()]
    try:
        release.license.verify()
    except ModelError as e:
        errors.append(str(e))

    if args.json_output:
        print(json.dumps({'release': release.name, 'valid': not errors, 'errors': errors}, indent=2))
    elif errors:
        print(f"Release '{release.name}' has {len(errors)} integrity error(s):", file=sys.stderr)
        for error in errors:
            print(f"  ✗ {error}", file=sys.stderr)
    else:
        print(f"Release '{release.name}' is valid ({len(release.packages)} packages)")
    return 1 if errors else 0


def release_extract_main(argv: list) -> int:
    """Handle 'release extract' verb.

    Unpacks every package and job archive into fresh directories under the
    destination (default: the configured work_dir).
    """
    parser = _release_parser('extract', 'Extract package and job archives')
    parser.add_argument('--dest', help='Destination directory (default from config)')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    try:
        release = _load_release(args)
        dest = Path(args.dest) if args.dest else load_config(args.config).work_dir
        dest.mkdir(parents=True, exist_ok=True)
        extracted = {
            'packages': {pkg.name: str(pkg.extract(dest)) for pkg in release.packages},
            'jobs': {job.name: str(job.extract(dest)) for job in release.jobs},
        }
    except (ModelError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: cannot create destination: {e}", file=sys.stderr)
        return 1

    if args.json_output:
        print(json.dumps(extracted, indent=2))
        return 0

    for kind, items in extracted.items():
        for name, path in items.items():
            print(f"{kind[:-1]} {name} -> {path}")
    return 0


def roles_versions_main(argv: list) -> int:
    """Handle 'roles versions' verb."""
    parser = argparse.ArgumentParser(
        prog='rolepack roles versions',
        description='Print role dev versions and the role manifest version',
    )
    parser.add_argument(
        '--role-manifest', '-m',
        required=True,
        help='Path to role manifest file',
    )
    parser.add_argument(
        '--release', '-r',
        action='append',
        default=[],
        help='Final release directory (repeatable)',
    )
    parser.add_argument(
        '--dev-release', '-d',
        action='append',
        default=[],
        help='Dev release directory, latest version (repeatable)',
    )
    parser.add_argument(
        '--cache-dir',
        help='Dev release archive cache (default from config)',
    )
    parser.add_argument(
        '--salt',
        help='Extra string mixed into the manifest version (default from config)',
    )
    _add_common_args(parser)
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    try:
        config = load_config(args.config)
        cache_dir = args.cache_dir or config.bosh_cache_dir
        salt = args.salt if args.salt is not None else config.version_salt

        releases = [Release.load(path) for path in args.release]
        releases.extend(Release.load_dev(path, cache_dir=cache_dir) for path in args.dev_release)
        manifest = RoleManifest.load(args.role_manifest, releases)

        role_versions = {role.name: role.get_role_dev_version() for role in manifest.roles}
        manifest_version = manifest.get_role_manifest_dev_package_version(salt)
    except (ModelError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json_output:
        print(json.dumps({'roles': role_versions, 'manifest': manifest_version}, indent=2))
        return 0

    width = max((len(name) for name in role_versions), default=0)
    for name, version in role_versions.items():
        print(f"{name.ljust(width)}  {version}")
    print(f"{'(manifest)'.ljust(width)}  {manifest_version}")
    return 0


def _release_to_dict(release: Release) -> dict:
    return {
        'name': release.name,
        'version': release.version,
        'commit_hash': release.commit_hash,
        'uncommitted_changes': release.uncommitted_changes,
        'dev': release.dev,
        'license': {
            'sha1': release.license.sha1,
            'actual_sha1': release.license.actual_sha1,
            'files': sorted(release.license.files),
        },
        'packages': [
            {
                'name': pkg.name,
                'version': pkg.version,
                'fingerprint': pkg.fingerprint,
                'sha1': pkg.sha1,
                'dependencies': pkg.dependency_names,
            }
            for pkg in release.packages
        ],
        'jobs': [
            {
                'name': job.name,
                'sha1': job.sha1,
                'packages': [p.name for p in job.packages],
                'properties': [p.name for p in job.properties],
            }
            for job in release.jobs
        ],
    }


VERBS = {
    "release": {
        "show": release_show_main,
        "verify": release_verify_main,
        "extract": release_extract_main,
    },
    "roles": {
        "versions": roles_versions_main,
    },
}


def _print_usage() -> None:
    print("Usage: rolepack <noun> <action> [options]")
    print()
    print("Nouns:")
    for noun, description in NOUN_COMMANDS.items():
        print(f"  {noun:<10}{description}")


def main(argv: Optional[list] = None) -> int:
    """Dispatch noun-action subcommands.

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ('-h', '--help'):
        _print_usage()
        return 0 if argv else 1

    noun, rest = argv[0], argv[1:]
    verbs = VERBS.get(noun)
    if verbs is None:
        print(f"Unknown command: {noun}", file=sys.stderr)
        _print_usage()
        return 1

    if not rest or rest[0] not in verbs:
        print(f"Usage: rolepack {noun} <{'|'.join(verbs)}> [options]", file=sys.stderr)
        return 1

    return verbs[rest[0]](rest[1:])


if __name__ == '__main__':
    sys.exit(main())

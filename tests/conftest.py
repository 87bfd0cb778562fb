"""Shared pytest fixtures for rolepack tests."""

import hashlib
import io
import sys
import tarfile
from pathlib import Path

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

NTP_PACKAGE = 'ntp-4.2.8p2'
NTP_FINGERPRINT = '543219fbdaf6ec6f8af2956016055f2fb100d782'


def sha1_of(path: Path) -> str:
    return hashlib.sha1(path.read_bytes()).hexdigest()


def write_tgz(path: Path, files: dict, mode: str = 'w:gz') -> str:
    """Write a tar archive of {member name: bytes} and return its sha1."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            info.mode = 0o755 if name.endswith('packaging') else 0o644
            tar.addfile(info, io.BytesIO(content))
    return sha1_of(path)


def write_archive(archive_dir: Path, files: dict) -> str:
    """Write an archive named by its own sha1 into archive_dir."""
    archive_dir.mkdir(parents=True, exist_ok=True)
    tmp = archive_dir / '.tmp-archive'
    sha1 = write_tgz(tmp, files)
    tmp.rename(archive_dir / sha1)
    return sha1


def build_release(
    root: Path,
    name: str = 'ntp',
    version: str = '2',
    packages=None,
    jobs=None,
    license_files=None,
    dev: bool = False,
    cache_dir=None,
    inline_jobs: bool = True,
) -> Path:
    """Create a release tree on disk.

    Args:
        root: Release directory (created)
        packages: [{'name', 'dependencies', 'files'}]; defaults to one ntp package
        jobs: [{'name', 'packages', 'properties', 'templates'}]; defaults to ntpd
        license_files: {member name: bytes} for license.tgz
        dev: Write a dev release layout (archives go to cache_dir)
        inline_jobs: Put job specs in the release manifest instead of job.MF

    Returns:
        Path of the release manifest
    """
    if packages is None:
        packages = [{'name': NTP_PACKAGE, 'fingerprint': NTP_FINGERPRINT}]
    if jobs is None:
        jobs = [{
            'name': 'ntpd',
            'packages': [NTP_PACKAGE],
            'properties': {'ntp_conf': {'description': 'ntpd config', 'default': 'server 0.pool'}},
            'templates': {'ctl.sh': 'bin/ctl', 'ntp.conf.erb': 'etc/ntp.conf'},
        }]
    if license_files is None:
        license_files = {
            './LICENSE': b'Apache License 2.0\n',
            './NOTICE': b'Copyright example\n',
            './README.md': b'readme\n',
        }

    root.mkdir(parents=True, exist_ok=True)
    (root / 'packages').mkdir(exist_ok=True)
    (root / 'jobs').mkdir(exist_ok=True)
    license_sha1 = write_tgz(root / 'license.tgz', license_files)

    if dev:
        package_dir = job_dir = Path(cache_dir)
    else:
        package_dir, job_dir = root / 'packages', root / 'jobs'

    manifest_packages = []
    for pkg in packages:
        files = pkg.get('files') or {
            './packaging': f"# packaging for {pkg['name']}\n".encode(),
            f"./{pkg['name']}.tar.gz": b'source',
        }
        sha1 = write_archive(package_dir, files)
        fingerprint = pkg.get('fingerprint', hashlib.sha1(pkg['name'].encode()).hexdigest())
        manifest_packages.append({
            'name': pkg['name'],
            'version': fingerprint,
            'fingerprint': fingerprint,
            'sha1': sha1,
            'dependencies': pkg.get('dependencies', []),
        })

    manifest_jobs = []
    for job in jobs:
        spec = {
            'name': job['name'],
            'packages': job.get('packages', []),
            'properties': job.get('properties', {}),
            'templates': job.get('templates', {}),
        }
        files = {'./job.MF': yaml.safe_dump(spec).encode(), './monit': b'check process\n'}
        files.update({f'./templates/{src}': b'<%= p("x") %>' for src in spec['templates']})
        sha1 = write_archive(job_dir, files)
        fingerprint = hashlib.sha1(job['name'].encode()).hexdigest()
        record = {'name': job['name'], 'version': fingerprint, 'fingerprint': fingerprint, 'sha1': sha1}
        if inline_jobs:
            record['packages'] = spec['packages']
            record['properties'] = [
                {'name': prop, 'description': (definition or {}).get('description', '')}
                for prop, definition in spec['properties'].items()
            ]
            record['templates'] = spec['templates']
        manifest_jobs.append(record)

    manifest = {
        'name': name,
        'version': version,
        'commit_hash': 'abc1234',
        'uncommitted_changes': False,
        'license': {'sha1': license_sha1},
        'packages': manifest_packages,
        'jobs': manifest_jobs,
    }

    if dev:
        manifest_path = root / 'dev_releases' / name / f'{name}-{version}.yml'
    else:
        manifest_path = root / 'release.MF'
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_text(yaml.safe_dump(manifest, sort_keys=False))
    return manifest_path


@pytest.fixture
def release_dir(tmp_path):
    """Final ntp release with one package and one job."""
    root = tmp_path / 'ntp-release'
    build_release(root)
    return root


@pytest.fixture
def dev_release(tmp_path):
    """Dev ntp release at version 2+dev.3 with its archives in a cache dir.

    Returns:
        (release dir, cache dir) tuple
    """
    root = tmp_path / 'ntp-release'
    cache_dir = root / 'bosh-cache'
    build_release(root, version='2+dev.3', dev=True, cache_dir=cache_dir)

    (root / 'config').mkdir()
    (root / 'config' / 'final.yml').write_text('final_name: ntp\nblobstore:\n  provider: local\n')
    index = {
        'builds': {
            'a1': {'version': '2+dev.2'},
            'b2': {'version': '2+dev.3'},
            'c3': {'version': '1+dev.9'},
        },
        'format-version': '2',
    }
    (root / 'dev_releases' / 'ntp' / 'index.yml').write_text(yaml.safe_dump(index))
    return root, cache_dir


@pytest.fixture
def role_env(tmp_path):
    """Two releases plus a role manifest directory with scripts.

    Returns:
        dict with 'releases' (loaded Release list) and 'dir' (manifest dir)
    """
    from model import Release

    build_release(
        tmp_path / 'ntp-release',
        name='ntp',
        packages=[
            {'name': 'libc'},
            {'name': 'ntp', 'dependencies': ['libc']},
            {'name': 'tools'},
        ],
        jobs=[
            {'name': 'ntpd', 'packages': ['ntp', 'libc']},
            {'name': 'ntpdate', 'packages': ['tools', 'libc']},
        ],
    )
    build_release(
        tmp_path / 'web-release',
        name='web',
        packages=[{'name': 'nginx'}],
        jobs=[{'name': 'nginx', 'packages': ['nginx']}],
    )
    releases = [Release.load(tmp_path / 'ntp-release'), Release.load(tmp_path / 'web-release')]

    manifest_dir = tmp_path / 'manifest'
    (manifest_dir / 'scripts').mkdir(parents=True)
    (manifest_dir / 'scripts' / 'environ.sh').write_text('export A=1\n')
    (manifest_dir / 'scripts' / 'setup.sh').write_text('echo setup\n')
    (manifest_dir / 'scripts' / 'post.sh').write_text('echo post\n')
    return {'releases': releases, 'dir': manifest_dir}


def write_role_manifest(directory: Path, data: dict, name: str = 'role-manifest.yml') -> Path:
    path = directory / name
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    return path

#!/usr/bin/env python3
"""Tests for model.signature and role versioning.

Tests verify:
1. Role versions are deterministic and composed in a fixed order
2. Package and template order do not matter, job order does
3. Script content and template value changes change the version
4. Absolute script paths do not contribute
5. The manifest version is sorted by role and seeded with a salt
"""

import hashlib
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from conftest import write_role_manifest
from model import Job, Package, RoleManifest, ScriptNotFoundError
from model import signature


def _sha1(text: str) -> str:
    return hashlib.sha1(text.encode()).hexdigest()


def _pkg(name, sha1, release='rel'):
    return Package(name=name, version='1', fingerprint='1', sha1=sha1, path=Path(sha1),
                   release_name=release)


def _job(name, sha1, packages):
    return Job(name=name, release_name='rel', version='1', fingerprint='1', sha1=sha1,
               path=Path(sha1), packages=list(packages))


def _load(role_env, *roles, templates=None):
    data = {'roles': list(roles)}
    if templates is not None:
        data['configuration'] = {'templates': templates}
    path = write_role_manifest(role_env['dir'], data)
    return RoleManifest.load(path, role_env['releases'])


def _role(name, jobs, **extra):
    data = {'name': name, 'jobs': [{'name': j, 'release_name': r} for j, r in jobs]}
    data.update(extra)
    return data


class TestTemplateSignature:
    """template_signature()."""

    def test_sorted_lines(self):
        templates = {'b': '2', 'a': '1'}
        assert signature.template_signature(templates) == _sha1('a: 1b: 2')

    def test_insertion_order_irrelevant(self):
        first = signature.template_signature({'x': '1', 'y': '2', 'z': '3'})
        second = signature.template_signature({'z': '3', 'x': '1', 'y': '2'})
        assert first == second

    def test_value_change(self):
        assert (signature.template_signature({'x': '1'})
                != signature.template_signature({'x': '2'}))


class TestScriptSignature:
    """script_signature()."""

    def test_path_then_content(self, tmp_path):
        script = tmp_path / 'a.sh'
        script.write_text('echo a\n')

        sig = signature.script_signature([str(script)], lambda p, e: e)

        assert sig == _sha1(f"{script}echo a\n")

    def test_sorted_and_deduplicated(self, tmp_path):
        a, b = tmp_path / 'a.sh', tmp_path / 'b.sh'
        a.write_text('A')
        b.write_text('B')

        forward = signature.script_signature([str(a), str(b)], lambda p, e: e)
        backward = signature.script_signature([str(b), str(a), str(b)], lambda p, e: e)

        assert forward == backward == _sha1(f"{a}A{b}B")

    def test_unreadable_script(self, tmp_path):
        missing = tmp_path / 'missing.sh'
        with pytest.raises(ScriptNotFoundError, match='missing.sh'):
            signature.script_signature(
                [str(missing)], lambda p, e: ScriptNotFoundError('r', p, e.strerror))


class TestRoleDevVersion:
    """role_dev_version() on hand-built jobs."""

    def test_composition(self):
        libc, ntp = _pkg('libc', 'p1'), _pkg('ntp', 'p2')
        job = _job('ntpd', 'j1', [ntp, libc])

        version = signature.role_dev_version([job], 's1', 't1')

        assert version == _sha1('\nj1\np1\np2\ns1\nt1')

    def test_optional_parts_omitted(self):
        job = _job('ntpd', 'j1', [_pkg('ntp', 'p2')])
        assert signature.role_dev_version([job]) == _sha1('\nj1\np2')

    def test_package_order_irrelevant(self):
        a, b = _pkg('a', 'pa'), _pkg('b', 'pb')
        first = signature.role_dev_version([_job('j', 'j1', [a, b])])
        second = signature.role_dev_version([_job('j', 'j1', [b, a])])
        assert first == second

    def test_job_order_matters(self):
        j1 = _job('one', 'j1', [])
        j2 = _job('two', 'j2', [])
        assert signature.role_dev_version([j1, j2]) != signature.role_dev_version([j2, j1])

    def test_shared_packages_counted_once(self):
        libc = _pkg('libc', 'p1')
        jobs = [_job('a', 'j1', [libc]), _job('b', 'j2', [libc])]
        assert signature.role_dev_version(jobs) == _sha1('\nj1\nj2\np1')

    def test_same_name_from_two_releases(self):
        ours, theirs = _pkg('libc', 'p1', 'ours'), _pkg('libc', 'p2', 'theirs')
        packages = signature.role_packages([_job('a', 'j1', [theirs, ours])])
        assert packages == [ours, theirs]


class TestRoleVersion:
    """Role.get_role_dev_version() on loaded manifests."""

    def test_deterministic(self, role_env):
        role = _role('a', [('ntpd', 'ntp')], scripts=['scripts/setup.sh'],
                     configuration={'templates': {'k': 'v'}})

        first = _load(role_env, role).roles[0].get_role_dev_version()
        second = _load(role_env, role).roles[0].get_role_dev_version()

        assert first == second
        assert len(first) == 40

    def test_exact_value_without_scripts_or_templates(self, role_env):
        manifest = _load(role_env, _role('a', [('ntpd', 'ntp')]))
        ntp = role_env['releases'][0]
        job = ntp.lookup_job('ntpd')
        libc, ntp_pkg = ntp.lookup_package('libc'), ntp.lookup_package('ntp')

        version = manifest.roles[0].get_role_dev_version()

        assert version == _sha1(f"\n{job.sha1}\n{libc.sha1}\n{ntp_pkg.sha1}")

    def test_job_order_changes_version(self, role_env):
        forward = _load(role_env, _role('a', [('ntpd', 'ntp'), ('ntpdate', 'ntp')]))
        backward = _load(role_env, _role('a', [('ntpdate', 'ntp'), ('ntpd', 'ntp')]))
        assert (forward.roles[0].get_role_dev_version()
                != backward.roles[0].get_role_dev_version())

    def test_script_content_change(self, role_env):
        role = _role('a', [('ntpd', 'ntp')], scripts=['scripts/setup.sh'])
        before = _load(role_env, role)
        before_role = before.roles[0].get_role_dev_version()
        before_manifest = before.get_role_manifest_dev_package_version()

        (role_env['dir'] / 'scripts' / 'setup.sh').write_text('echo changed\n')
        after = _load(role_env, role)

        assert after.roles[0].get_role_dev_version() != before_role
        assert after.get_role_manifest_dev_package_version() != before_manifest

    def test_template_value_change(self, role_env):
        role = _role('a', [('ntpd', 'ntp')])
        before = _load(role_env, role, templates={'properties.port': 80})
        after = _load(role_env, role, templates={'properties.port': 81})

        assert (before.roles[0].get_role_dev_version()
                != after.roles[0].get_role_dev_version())
        assert (before.get_role_manifest_dev_package_version()
                != after.get_role_manifest_dev_package_version())

    def test_absolute_script_not_hashed(self, role_env):
        """Declared absolute scripts add the empty script signature only."""
        manifest = _load(role_env, _role('a', [('ntpd', 'ntp')], scripts=['/opt/in/container.sh']))
        ntp = role_env['releases'][0]
        job = ntp.lookup_job('ntpd')
        libc, ntp_pkg = ntp.lookup_package('libc'), ntp.lookup_package('ntp')
        empty = hashlib.sha1().hexdigest()

        version = manifest.roles[0].get_role_dev_version()

        assert empty == 'da39a3ee5e6b4b0d3255bfef95601890afd80709'
        assert version == _sha1(f"\n{job.sha1}\n{libc.sha1}\n{ntp_pkg.sha1}\n{empty}")

    def test_yaml_boolean_spellings_differ(self, role_env):
        role = _role('a', [('ntpd', 'ntp')])
        path = role_env['dir'] / 'yes.yml'
        path.write_text('roles: []\nconfiguration:\n  templates:\n    properties.flag: yes\n')
        spelled_yes = RoleManifest.load(path, role_env['releases'])
        spelled_true = _load(role_env, role, templates={'properties.flag': True})

        assert spelled_yes.templates == {'properties.flag': 'yes'}
        assert (signature.template_signature(spelled_yes.templates)
                != signature.template_signature(spelled_true.templates))

    def test_missing_script(self, role_env):
        manifest = _load(role_env, _role('a', [('ntpd', 'ntp')], scripts=['scripts/nope.sh']))

        with pytest.raises(ScriptNotFoundError) as exc_info:
            manifest.roles[0].get_role_dev_version()
        assert exc_info.value.role == 'a'
        assert exc_info.value.code == 'E402'


class TestManifestVersion:
    """RoleManifest.get_role_manifest_dev_package_version()."""

    def test_seeded_and_sorted_by_role(self, role_env):
        manifest = _load(role_env,
                         _role('zeta', [('ntpd', 'ntp')]),
                         _role('alpha', [('nginx', 'web')]))
        zeta, alpha = (r.get_role_dev_version() for r in manifest.roles)

        version = manifest.get_role_manifest_dev_package_version('salt')

        assert version == _sha1(f"salt{alpha}{zeta}")

    def test_role_declaration_order_irrelevant(self, role_env):
        first = _load(role_env, _role('a', [('ntpd', 'ntp')]), _role('b', [('nginx', 'web')]))
        second = _load(role_env, _role('b', [('nginx', 'web')]), _role('a', [('ntpd', 'ntp')]))
        assert (first.get_role_manifest_dev_package_version()
                == second.get_role_manifest_dev_package_version())

    def test_salt_changes_version(self, role_env):
        manifest = _load(role_env, _role('a', [('ntpd', 'ntp')]))
        assert (manifest.get_role_manifest_dev_package_version('')
                != manifest.get_role_manifest_dev_package_version('x'))

    def test_empty_manifest(self, role_env):
        manifest = _load(role_env)
        assert manifest.get_role_manifest_dev_package_version() == _sha1('')

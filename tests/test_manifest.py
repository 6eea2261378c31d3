"""Tests for root package collection."""

import json

import pytest

from npm_mirror.api.exceptions import ManifestError
from npm_mirror.manifest.reader import (
    collect_dependencies,
    collect_lockfile_dependencies,
    load_manifest,
)
from npm_mirror.models.package import PackageRef

PACKAGE_JSON = {
    'name': 'webapp',
    'version': '1.0.0',
    'dependencies': {'react': '^18.2.0', '@acme/ui': '~2.1.0'},
    'devDependencies': {'jest': '^29.0.0', 'react': '^18.2.0'},
    'peerDependencies': {'react-dom': '^18.0.0'},
    'optionalDependencies': {'fsevents': '2.3.3'},
}

LOCKFILE = {
    'name': 'webapp',
    'lockfileVersion': 3,
    'packages': {
        '': {'name': 'webapp', 'version': '1.0.0'},
        'node_modules/react': {'version': '18.2.0'},
        'node_modules/@acme/ui': {'version': '2.1.4'},
        'node_modules/@acme/ui/node_modules/react': {'version': '17.0.2'},
        'node_modules/local-lib': {'resolved': '../local-lib', 'link': True},
        'packages/tool': {'name': 'tool', 'version': '0.1.0'},
    },
}


class TestCollectDependencies:
    """Test package.json collection."""

    def test_runtime_dependencies_only(self):
        refs = collect_dependencies(PACKAGE_JSON)

        assert refs == [PackageRef('react', '^18.2.0'), PackageRef('@acme/ui', '~2.1.0')]

    def test_all_sections_without_duplicates(self):
        refs = collect_dependencies(
            PACKAGE_JSON, include_dev=True, include_peer=True, include_optional=True
        )

        assert [ref.key for ref in refs] == [
            'react@^18.2.0',
            '@acme/ui@~2.1.0',
            'jest@^29.0.0',
            'react-dom@^18.0.0',
            'fsevents@2.3.3',
        ]

    def test_scope_filter(self):
        refs = collect_dependencies(PACKAGE_JSON, include_dev=True, scope='@acme')

        assert refs == [PackageRef('@acme/ui', '~2.1.0')]

    def test_no_dependencies(self):
        assert collect_dependencies({'name': 'empty'}) == []

    def test_malformed_section_ignored(self):
        refs = collect_dependencies(
            {'dependencies': ['react'], 'devDependencies': {'jest': '29.0.0'}},
            include_dev=True,
        )

        assert refs == [PackageRef('jest', '29.0.0')]


class TestCollectLockfileDependencies:
    """Test lockfile collection."""

    def test_exact_versions_from_packages_map(self):
        refs = collect_lockfile_dependencies(LOCKFILE)

        assert [ref.key for ref in refs] == [
            'react@18.2.0',
            '@acme/ui@2.1.4',
            'react@17.0.2',
            'tool@0.1.0',
        ]

    def test_scope_filter(self):
        refs = collect_lockfile_dependencies(LOCKFILE, scope='@acme')

        assert refs == [PackageRef('@acme/ui', '2.1.4')]

    def test_legacy_lockfile_rejected(self):
        with pytest.raises(ManifestError):
            collect_lockfile_dependencies({'lockfileVersion': 1, 'dependencies': {}})


class TestLoadManifest:
    """Test reading manifests from disk."""

    def test_package_json(self, tmp_path):
        path = tmp_path / 'package.json'
        path.write_text(json.dumps(PACKAGE_JSON))

        refs = load_manifest(str(path), include_peer=True)

        assert [ref.name for ref in refs] == ['react', '@acme/ui', 'react-dom']

    def test_lockfile_detected_by_name(self, tmp_path):
        path = tmp_path / 'package-lock.json'
        path.write_text(json.dumps(LOCKFILE))

        refs = load_manifest(str(path))

        assert PackageRef('react', '18.2.0') in refs

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError):
            load_manifest(str(tmp_path / 'package.json'))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'package.json'
        path.write_text('{"dependencies": ')

        with pytest.raises(ManifestError):
            load_manifest(str(path))

    def test_non_object_document(self, tmp_path):
        path = tmp_path / 'package.json'
        path.write_text('[]')

        with pytest.raises(ManifestError):
            load_manifest(str(path))

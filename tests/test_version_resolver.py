"""Tests for version range resolution."""

import pytest

from npm_mirror.api.exceptions import VersionResolutionError
from npm_mirror.models.package import RegistryMetadata
from npm_mirror.versioning.resolver import (
    compare_versions,
    is_version_range,
    parse_version,
    resolve_or_raise,
    resolve_version,
)


def _metadata(versions, latest=None):
    return RegistryMetadata.from_registry(
        {
            'versions': {v: {} for v in versions},
            'dist-tags': {'latest': latest} if latest else {},
        }
    )


class TestParseVersion:
    """Test version parsing and comparison."""

    def test_parse_full_version(self):
        assert parse_version('1.2.3') == (1, 2, 3)

    def test_missing_components_are_zero(self):
        assert parse_version('2') == (2, 0, 0)
        assert parse_version('2.5') == (2, 5, 0)

    def test_prerelease_suffix_ignored(self):
        assert parse_version('1.0.0-beta.1') == (1, 0, 0)

    def test_leading_v(self):
        assert parse_version('v3.1.4') == (3, 1, 4)

    def test_compare_versions(self):
        assert compare_versions('1.0.0', '1.0.1') < 0
        assert compare_versions('1.1.0', '1.0.1') > 0
        assert compare_versions('1.0.0', '1.0.0') == 0
        assert compare_versions('1.10.0', '1.9.0') > 0

    def test_is_version_range(self):
        assert is_version_range('^1.0.0')
        assert is_version_range('~1.0.0')
        assert is_version_range('>=1.0.0')
        assert is_version_range('*')
        assert is_version_range('latest')
        assert not is_version_range('1.0.0')
        assert not is_version_range('1.0.0-beta.1')


class TestResolveVersion:
    """Test resolution against registry metadata."""

    def setup_method(self):
        """Set up test fixtures."""
        self.metadata = _metadata(['1.0.0', '1.1.0', '2.0.0'], latest='2.0.0')

    def test_caret_range(self):
        assert resolve_version(self.metadata, '^1.0.0') == '1.1.0'

    def test_tilde_range(self):
        assert resolve_version(self.metadata, '~1.0.0') == '1.0.0'

    def test_greater_or_equal_range(self):
        assert resolve_version(self.metadata, '>=1.0.0') == '2.0.0'

    def test_latest_and_star(self):
        assert resolve_version(self.metadata, 'latest') == '2.0.0'
        assert resolve_version(self.metadata, '*') == '2.0.0'

    def test_exact_version(self):
        assert resolve_version(self.metadata, '1.1.0') == '1.1.0'

    def test_unmatched_ranges_fall_back_to_latest(self):
        assert resolve_version(self.metadata, '^5.0.0') == '2.0.0'
        assert resolve_version(self.metadata, '~1.5.0') == '2.0.0'
        assert resolve_version(self.metadata, '>=3.0.0') == '2.0.0'

    def test_unknown_exact_version_falls_back_to_latest(self):
        assert resolve_version(self.metadata, '9.9.9') == '2.0.0'
        assert resolve_version(self.metadata, 'git+https://example.com/x.git') == '2.0.0'

    def test_latest_tag_wins_over_highest(self):
        metadata = _metadata(['1.0.0', '3.0.0'], latest='1.0.0')
        assert resolve_version(metadata, 'latest') == '1.0.0'

    def test_missing_latest_tag_uses_highest(self):
        metadata = _metadata(['1.0.0', '1.4.0', '1.2.0'])
        assert resolve_version(metadata, 'latest') == '1.4.0'

    def test_no_versions_returns_none(self):
        metadata = _metadata([], latest='1.0.0')
        assert resolve_version(metadata, '^1.0.0') is None
        assert resolve_version(metadata, 'latest') is None

    def test_numeric_not_lexical_ordering(self):
        metadata = _metadata(['1.2.0', '1.10.0', '1.9.0'], latest='1.10.0')
        assert resolve_version(metadata, '^1.0.0') == '1.10.0'

    def test_prerelease_not_excluded_from_highest(self):
        metadata = _metadata(['1.0.0', '1.1.0-beta.1'], latest='1.0.0')
        assert resolve_version(metadata, '^1.0.0') == '1.1.0-beta.1'

    def test_resolve_or_raise(self):
        assert resolve_or_raise(self.metadata, 'pkg', '^1.0.0') == '1.1.0'

        with pytest.raises(VersionResolutionError) as exc_info:
            resolve_or_raise(_metadata([]), 'pkg', '^1.0.0')

        assert exc_info.value.package_name == 'pkg'
        assert exc_info.value.version_spec == '^1.0.0'

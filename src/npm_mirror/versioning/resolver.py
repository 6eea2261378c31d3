"""Version range resolution against registry metadata.

Only the prefix forms used by typical manifests are understood: ``^``, ``~``,
``>=``, exact versions and the ``latest`` / ``*`` sentinels. Anything else
falls back to the ``latest`` dist-tag.
"""

import re
from typing import Callable, Optional, Tuple

from ..api.exceptions import VersionResolutionError
from ..models.package import RegistryMetadata

Version = Tuple[int, int, int]

LATEST_SPECS = ('latest', '*', '')
RANGE_MARKERS = ('>=', '^', '~', '*')

_LEADING_DIGITS = re.compile(r'^\d+')


def parse_version(version: str) -> Version:
    """Parse ``major.minor.patch`` into an integer triple.

    Each component contributes its leading digits; missing or non-numeric
    components count as 0, so ``1.0.0-beta.1`` parses as ``(1, 0, 0)``.
    """
    version = version.strip().lstrip('v=').strip()
    parts = version.split('.')[:3]

    components = []
    for part in parts:
        match = _LEADING_DIGITS.match(part)
        components.append(int(match.group()) if match else 0)

    while len(components) < 3:
        components.append(0)

    return components[0], components[1], components[2]


def compare_versions(a: str, b: str) -> int:
    """Compare two versions component-wise; returns -1, 0 or 1."""
    left, right = parse_version(a), parse_version(b)
    return (left > right) - (left < right)


def is_version_range(version_spec: str) -> bool:
    """Whether the spec still needs resolving to an exact version."""
    spec = version_spec.strip()
    if spec == 'latest':
        return True
    return any(marker in spec for marker in RANGE_MARKERS)


def resolve_version(metadata: RegistryMetadata, version_spec: str) -> Optional[str]:
    """Resolve a version spec to a concrete published version.

    Args:
        metadata: Registry metadata for the package
        version_spec: Exact version, ``^``/``~``/``>=`` range, ``latest`` or ``*``

    Returns:
        Exact version, or None when the package has no versions at all
    """
    if not metadata.versions:
        return None

    spec = version_spec.strip()
    fallback = _latest(metadata)

    if spec in LATEST_SPECS:
        return fallback

    if spec.startswith('>='):
        floor = parse_version(spec[2:])
        match = _highest(metadata, lambda v: v >= floor)
        return match or fallback

    if spec.startswith('^'):
        major = parse_version(spec[1:])[0]
        match = _highest(metadata, lambda v: v[0] == major)
        return match or fallback

    if spec.startswith('~'):
        base = parse_version(spec[1:])
        match = _highest(metadata, lambda v: v[:2] == base[:2])
        return match or fallback

    if metadata.has_version(spec):
        return spec

    return fallback


def resolve_or_raise(
    metadata: RegistryMetadata, package_name: str, version_spec: str
) -> str:
    """Resolve a version spec, raising when nothing can be selected.

    Raises:
        VersionResolutionError: If the package has no versions
    """
    version = resolve_version(metadata, version_spec)
    if not version:
        raise VersionResolutionError(package_name, version_spec)
    return version


def _highest(
    metadata: RegistryMetadata, predicate: Callable[[Version], bool]
) -> Optional[str]:
    best: Optional[str] = None
    best_parsed: Optional[Version] = None

    for version in metadata.versions:
        parsed = parse_version(version)
        if not predicate(parsed):
            continue
        # Strictly greater: ties keep registry order
        if best_parsed is None or parsed > best_parsed:
            best, best_parsed = version, parsed

    return best


def _latest(metadata: RegistryMetadata) -> Optional[str]:
    latest = metadata.dist_tags.get('latest')
    if latest:
        return latest
    return _highest(metadata, lambda v: True)

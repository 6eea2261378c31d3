"""Root package collection from package.json and package-lock.json."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from ..api.exceptions import ManifestError
from ..models.package import PackageRef

LOCKFILE_NAMES = ('package-lock.json', 'npm-shrinkwrap.json')


def collect_dependencies(
    package_json: Dict[str, Any],
    include_dev: bool = False,
    include_peer: bool = False,
    include_optional: bool = False,
    scope: Optional[str] = None,
) -> List[PackageRef]:
    """Collect root refs from the dependency sections of a package.json.

    Args:
        package_json: Parsed package.json
        include_dev: Include ``devDependencies``
        include_peer: Include ``peerDependencies``
        include_optional: Include ``optionalDependencies``
        scope: Only keep packages whose name starts with this prefix

    Returns:
        Refs in manifest order, without duplicates
    """
    sections = ['dependencies']
    if include_dev:
        sections.append('devDependencies')
    if include_peer:
        sections.append('peerDependencies')
    if include_optional:
        sections.append('optionalDependencies')

    refs: Dict[str, PackageRef] = {}
    for section in sections:
        deps = package_json.get(section) or {}
        if not isinstance(deps, dict):
            logger.warning(f'Ignoring malformed {section} section')
            continue

        for name, spec in deps.items():
            if scope and not name.startswith(scope):
                continue
            ref = PackageRef(name=name, version_spec=str(spec))
            refs.setdefault(ref.key, ref)

    return list(refs.values())


def collect_lockfile_dependencies(
    lockfile: Dict[str, Any], scope: Optional[str] = None
) -> List[PackageRef]:
    """Collect exact refs from the flat ``packages`` map of a v2/v3 lockfile.

    Raises:
        ManifestError: If the lockfile has no ``packages`` map
    """
    packages = lockfile.get('packages')
    if not isinstance(packages, dict):
        raise ManifestError(
            'Unsupported or invalid package-lock.json. '
            'Use npm v7+ to generate a lockfile v2 or v3.'
        )

    refs: Dict[str, PackageRef] = {}
    for path, details in packages.items():
        # The root project itself
        if path == '' or not isinstance(details, dict):
            continue
        # npm link symlinks
        if details.get('link') is True:
            continue

        name = details.get('name') or _name_from_path(path)
        version = details.get('version')
        if not name or not version:
            continue

        if scope and not name.startswith(scope):
            continue

        ref = PackageRef(name=name, version_spec=str(version))
        refs.setdefault(ref.key, ref)

    return list(refs.values())


def load_manifest(
    manifest_path: str,
    include_dev: bool = False,
    include_peer: bool = False,
    include_optional: bool = False,
    scope: Optional[str] = None,
) -> List[PackageRef]:
    """Read root refs from a package.json or lockfile on disk.

    Raises:
        ManifestError: If the file cannot be read or parsed
    """
    path = Path(manifest_path)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ManifestError(f'Manifest file not found: {manifest_path}')
    except (OSError, ValueError) as e:
        raise ManifestError(f'Could not read manifest {manifest_path}: {e}')

    if not isinstance(data, dict):
        raise ManifestError(f'Manifest {manifest_path} is not a JSON object')

    if path.name in LOCKFILE_NAMES:
        refs = collect_lockfile_dependencies(data, scope=scope)
    else:
        refs = collect_dependencies(
            data,
            include_dev=include_dev,
            include_peer=include_peer,
            include_optional=include_optional,
            scope=scope,
        )

    logger.info(f'Collected {len(refs)} root packages from {manifest_path}')
    return refs


def _name_from_path(path: str) -> Optional[str]:
    marker = 'node_modules/'
    index = path.rfind(marker)
    if index == -1:
        return None
    return path[index + len(marker) :] or None

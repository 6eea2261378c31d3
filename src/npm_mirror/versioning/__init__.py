"""Version parsing and range resolution."""

from .resolver import (
    parse_version,
    compare_versions,
    is_version_range,
    resolve_version,
    resolve_or_raise,
)

__all__ = [
    'parse_version',
    'compare_versions',
    'is_version_range',
    'resolve_version',
    'resolve_or_raise',
]

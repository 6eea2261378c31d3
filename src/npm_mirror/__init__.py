"""npm-mirror

Mirrors the full transitive dependency tree of npm packages from a public
registry into a private one.
"""

__version__ = '0.1.0'

from .cli import main

__all__ = ['main']

"""
ZooSync: a live, eventually-consistent mirror of a ZooKeeper namespace.
"""

from pyrollup import rollup

from . import core
from .core import *  # noqa

__all__ = rollup(core)

__canonical_children__ = [
    "core",
]

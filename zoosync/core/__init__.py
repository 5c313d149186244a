"""
This module implements the mirror of a hierarchical coordination namespace,
along with the primitives to mutate it.
"""

from pyrollup import rollup

from . import (
    client,
    dispatcher,
    exceptions,
    listeners,
    mirror,
    paths,
    sync,
    types,
)
from .client import *  # noqa
from .dispatcher import *  # noqa
from .exceptions import *  # noqa
from .listeners import *  # noqa
from .mirror import *  # noqa
from .paths import *  # noqa
from .sync import *  # noqa
from .types import *  # noqa

__all__ = rollup(
    sync,
    client,
    listeners,
    mirror,
    dispatcher,
    paths,
    types,
    exceptions,
)

__canonical_children__ = [
    "sync",
    "client",
    "listeners",
    "mirror",
    "dispatcher",
    "paths",
    "types",
    "exceptions",
]

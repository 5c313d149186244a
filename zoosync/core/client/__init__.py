"""
Clients for the remote coordination service.
"""

from pyrollup import rollup

from . import client, kazoo_client, memory
from .client import *  # noqa
from .kazoo_client import *  # noqa
from .memory import *  # noqa

__all__ = rollup(client, memory, kazoo_client)

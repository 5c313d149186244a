__all__ = [
    "ZooSyncError",
    "InvalidPathError",
    "NodeNotFoundError",
    "NodeExistsError",
    "VersionConflictError",
    "NotEmptyError",
    "NoChildrenForEphemeralsError",
    "ConnectionLossError",
    "SessionExpiredError",
    "AlreadyWatchingError",
]


class ZooSyncError(Exception):
    """
    Base class of all errors raised by this package.
    """


class InvalidPathError(ZooSyncError, ValueError):
    """
    Raised when a path fails validation. Always raised before any remote
    call is made.
    """

    def __init__(self, path: str, reason: str | None = None):
        self.path = path
        msg = f"Invalid path: '{path}'"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class NodeNotFoundError(ZooSyncError):
    """
    Raised when a node does not exist, either in the mirror or remotely.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Node does not exist: '{path}'")


class NodeExistsError(ZooSyncError):
    """
    Raised by a remote client when creating a node which already exists.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Node already exists: '{path}'")


class VersionConflictError(ZooSyncError):
    """
    Raised upon a conditional write whose expected version does not match
    the node's current version.
    """

    def __init__(self, path: str, expected_version: int):
        self.path = path
        self.expected_version = expected_version
        super().__init__(
            f"Version conflict writing '{path}': expected version {expected_version}"
        )


class NotEmptyError(ZooSyncError):
    """
    Raised by a remote client when deleting a single node which still has
    children.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Node has children: '{path}'")


class NoChildrenForEphemeralsError(ZooSyncError):
    """
    Raised when attempting to create a child of an ephemeral node.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Ephemeral nodes may not have children: '{path}'")


class ConnectionLossError(ZooSyncError):
    """
    Transient loss of connectivity to the coordination service. The
    operation may be retried.
    """


class SessionExpiredError(ZooSyncError):
    """
    Raised when the session with the coordination service has permanently
    expired. The mirror is invalidated and no further operations are
    possible.
    """


class AlreadyWatchingError(ZooSyncError):
    """
    Raised when {obj}`ZooSync.watch` is invoked more than once.
    """

    def __init__(self):
        super().__init__("watch() may only be invoked once per instance")

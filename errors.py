# errors.py


class HookSyncError(Exception):
    """Base class for every error raised by HookSync."""


class ConfigError(HookSyncError):
    """The configuration or policy source cannot be used. Fatal at startup."""


class RequestFormatError(HookSyncError):
    """The webhook body could not be read, decoded or parsed (HTTP 400)."""


class AuthenticationError(HookSyncError):
    """
    The webhook failed an origin, event, signature or policy check (HTTP 404).

    `reason` names the failed check. It is logged but never sent to the caller.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SyncError(HookSyncError):
    """Executing an action against a repository failed (HTTP 500)."""


class RepositoryNotFoundError(SyncError):
    pass


class RemoteNotFoundError(SyncError):
    pass


class SyncAuthError(SyncError):
    """SSH credentials could not be loaded or were refused by the remote."""


class FetchError(SyncError):
    pass


class MergeConflictError(SyncError):
    """Histories diverged and could not be merged without conflicts."""


class MergeError(SyncError):
    """git refused to update the branch or working tree."""

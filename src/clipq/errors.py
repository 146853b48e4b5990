"""Exceptions raised by clipq."""


class ClipqError(Exception):
    """Base exception for clipq."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error

    def __str__(self):
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return base_msg


class AccessError(ClipqError):
    """The platform clipboard could not be read or written."""


class StorageError(ClipqError):
    """The history database failed (I/O, constraint violation)."""


class NotFound(ClipqError):
    """A clip, tag or plugin does not exist."""


class PluginNotFound(NotFound):
    pass


class InvalidInput(ClipqError):
    """Malformed index, unsupported format or bad config value."""


class PluginDisabled(ClipqError):
    pass


class PluginExecutionFailed(ClipqError):
    """A plugin could not be spawned, timed out or exited non-zero."""

    def __init__(self, message: str, stderr: str = "", original_error: Exception | None = None):
        super().__init__(message, original_error)
        self.stderr = stderr

"""Error types raised by the archive codec and the overlay filesystem."""


class AsarError(Exception):
    """Base class for asar-toolkit errors."""


# Archive structure
class MalformedArchive(AsarError, ValueError):
    """Preamble, metadata block or payload range is corrupt or truncated."""


class BoundsError(AsarError, EOFError):
    """A packer read went past the declared payload length."""


# Path resolution
class PathNotFound(AsarError, FileNotFoundError):
    pass


class NotAFile(AsarError, IsADirectoryError):
    pass


class NotADirectory(AsarError, NotADirectoryError):
    pass


class AlreadyExists(AsarError, FileExistsError):
    pass


class NotEmpty(AsarError, OSError):
    pass


# Overlay / session state
class ContentNotAvailable(AsarError):
    """A lazy file node has neither cached content nor a baseline to read from."""


class NoArchiveLoaded(AsarError):
    pass


class DispatchError(AsarError):
    """An offloaded operation failed; carries the id of the originating request."""

    def __init__(self, request_id: int, message: str):
        super().__init__(message)
        self.request_id = request_id
        self.message = message

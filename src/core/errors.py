class PosError(Exception):
    """Base class for every error raised by the store core."""


class ValidationError(PosError):
    """Bad or missing input; raised before anything is written."""


class NotFoundError(PosError):
    """An id lookup or a (name, category) lookup matched nothing."""


class ConflictError(PosError):
    """A product with the same name and category already exists."""


class TransportError(PosError):
    """
    Network, timeout or permission failure from a remote backend.

    code is one of "timeout", "unavailable", "permission-denied",
    "http-<status>" or "unknown".
    """

    def __init__(self, message: str, code: str = "unknown"):
        super().__init__(message)
        self.code = code

    @property
    def is_sync_class(self) -> bool:
        return self.code in ("timeout", "unavailable", "permission-denied")

"""Tagged error type shared by the paste engine and its adapters."""

from app.enums import ErrorKind

__all__ = ["PasteError"]


class PasteError(Exception):
    """Error raised by the paste engine, classified by ``kind``.

    Adapters translate library exceptions into a PasteError so that callers can
    switch on ``kind`` without knowing which backend failed.

    Example:
        >>> try:
        ...     await service.get("abc123")
        ... except PasteError as exc:
        ...     if exc.kind in (ErrorKind.NOT_FOUND, ErrorKind.EXPIRED):
        ...         ...
    """

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value
        super().__init__(f"{kind.value}: {self.message}")

    @property
    def is_missing(self) -> bool:
        """True for outcomes a client sees as "not found"."""
        return self.kind in (ErrorKind.NOT_FOUND, ErrorKind.EXPIRED)

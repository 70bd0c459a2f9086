"""
Error kinds raised by the offline sync engine.

A single exception type carries an ``ErrorKind`` tag plus the structured
payload of that kind (inner cause, status code/text). Callers branch on
``err.kind`` rather than on exception subclasses.
"""

from __future__ import annotations

import enum
from typing import Optional, Sequence

NOT_AVAILABLE = "Not available"


class ErrorKind(str, enum.Enum):
    TRANSPORT_UNREACHABLE = "transport_unreachable"
    REMOTE_REJECTED = "remote_rejected"
    CACHE_MISS = "cache_miss"
    SYNC_PASS_INCOMPLETE = "sync_pass_incomplete"


class OfflineSyncError(Exception):
    """
    Tagged engine error.

    Attributes
    ----------
    kind : ErrorKind
        Which failure this is.
    status_code, status_text : int | None, str | None
        Populated for ``REMOTE_REJECTED``.
    cause : BaseException | None
        The underlying transport failure, when there was one.
    failed_ids : tuple[int, ...]
        Record ids that did not replay, for ``SYNC_PASS_INCOMPLETE``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        cause: Optional[BaseException] = None,
        failed_ids: Sequence[int] = (),
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.status_text = status_text
        self.cause = cause
        self.failed_ids = tuple(failed_ids)

    @classmethod
    def unreachable(cls, cause: BaseException) -> "OfflineSyncError":
        return cls(
            ErrorKind.TRANSPORT_UNREACHABLE,
            f"Network Error: {str(cause) or type(cause).__name__}",
            cause=cause,
        )

    @classmethod
    def rejected(cls, status_code: int, status_text: str) -> "OfflineSyncError":
        return cls(
            ErrorKind.REMOTE_REJECTED,
            f"Server Error: {status_code} {status_text}".rstrip(),
            status_code=status_code,
            status_text=status_text,
        )

    @classmethod
    def not_available(cls, cause: Optional[BaseException] = None) -> "OfflineSyncError":
        """Terminal cache miss: no network and no strategy left to answer the request."""
        return cls(ErrorKind.CACHE_MISS, NOT_AVAILABLE, cause=cause)

    @classmethod
    def sync_incomplete(cls, failed_ids: Sequence[int], total: int) -> "OfflineSyncError":
        return cls(
            ErrorKind.SYNC_PASS_INCOMPLETE,
            f"{len(failed_ids)} of {total} pending mutation(s) failed to replay",
            failed_ids=failed_ids,
        )

    @property
    def is_offline(self) -> bool:
        return self.kind in (ErrorKind.TRANSPORT_UNREACHABLE, ErrorKind.CACHE_MISS)

    def __repr__(self) -> str:
        return f"OfflineSyncError(kind={self.kind.value!r}, message={self.message!r})"


__all__ = ["ErrorKind", "NOT_AVAILABLE", "OfflineSyncError"]

"""
Error taxonomy for reconciliation ticks.

Every error a tick can produce is a ReconcileError tagged with an
ErrorKind. The controller loop uses the tag to decide how to retry:

- TRANSIENT: infrastructure hiccup (RPC timeout, write conflict), retried
  with backoff
- VALIDATION: malformed spec, surfaced and not retried until the spec changes
- REQUEUE: "not ready yet" (drain in progress, quorum unmet), retried
  after `retry_after` or the default backoff
- FATAL: required state unexpectedly missing, logged and retried next period
"""

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    VALIDATION = "validation"
    REQUEUE = "requeue"
    FATAL = "fatal"


class ReconcileError(Exception):
    """
    Base class for tick errors.

    Attributes:
        kind: How the controller loop should treat the error.
        retry_after: Optional hint in seconds before the next attempt.
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind != ErrorKind.VALIDATION


class TransientInfraError(ReconcileError):
    """An RPC or API call failed or timed out."""

    kind = ErrorKind.TRANSIENT


class ConflictError(TransientInfraError):
    """
    An optimistic-concurrency precheck failed.

    Attributes:
        object_name: The object whose version token was stale.
    """

    def __init__(self, object_name: str) -> None:
        self.object_name = object_name
        super().__init__(
            f"{object_name} changed since it was read, retrying on next tick"
        )


class SpecValidationError(ReconcileError):
    """The declared spec cannot be reconciled as written."""

    kind = ErrorKind.VALIDATION


class RequeueError(ReconcileError):
    """The tick should be retried later; nothing failed."""

    kind = ErrorKind.REQUEUE


class FatalForTickError(ReconcileError):
    """Required state is unexpectedly missing."""

    kind = ErrorKind.FATAL


class CombinedError(ReconcileError):
    """
    Several errors collected from independent steps of one tick.

    The combined kind is the most conservative of its members: VALIDATION
    wins over FATAL, FATAL over TRANSIENT, TRANSIENT over REQUEUE.

    Attributes:
        errors: The collected errors, in the order they occurred.
    """

    _precedence = [
        ErrorKind.VALIDATION,
        ErrorKind.FATAL,
        ErrorKind.TRANSIENT,
        ErrorKind.REQUEUE,
    ]

    def __init__(self, errors: list[ReconcileError]) -> None:
        self.errors = errors
        kinds = {e.kind for e in errors}
        self.kind = next(k for k in self._precedence if k in kinds)
        hints = [e.retry_after for e in errors if e.retry_after is not None]
        super().__init__(
            "; ".join(str(e) for e in errors),
            retry_after=min(hints) if hints else None,
        )


def is_requeue(err: BaseException | None) -> bool:
    """True when `err` only signals "not ready yet"."""
    return isinstance(err, ReconcileError) and err.kind == ErrorKind.REQUEUE


def as_reconcile_error(err: Exception) -> ReconcileError:
    """Wrap a foreign exception so every tick error carries a kind."""
    if isinstance(err, ReconcileError):
        return err
    return FatalForTickError(f"{type(err).__name__}: {err}")


def combine_errors(errors: list[Exception]) -> ReconcileError | None:
    """
    Collapse a list of errors into a single tick error.

    Returns:
        None for an empty list, the error itself for a single entry,
        otherwise a CombinedError.
    """
    wrapped = [as_reconcile_error(e) for e in errors]
    if not wrapped:
        return None
    if len(wrapped) == 1:
        return wrapped[0]
    return CombinedError(wrapped)

"""Error taxonomy shared across the Omega Codex pipeline."""

from __future__ import annotations

import json
from typing import Any, Iterable, Literal, Sequence


class OmegaCodexError(RuntimeError):
    """Base error for failures raised by the pipeline.

    Secondary errors are failures that happened while this one was already
    propagating (for example a connection that failed to close). They are kept
    in the order they occurred; the error itself is always the primary one.
    """

    def __init__(self, message: str, *, secondary_errors: Iterable[BaseException] = ()) -> None:
        super().__init__(message)
        self.secondary_errors: list[BaseException] = list(secondary_errors)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def add_secondary(self, error: BaseException) -> None:
        self.secondary_errors.append(error)


class NotFoundError(OmegaCodexError):
    """Raised when a requested identifier or record does not exist."""


class RemoteCallError(OmegaCodexError):
    """Raised when a remote endpoint answers with a non-success status."""

    def __init__(self, task_name: str, status_code: int, server_message: str | None = None) -> None:
        message = f"{task_name}, Error Returned, Status Code: {status_code}"
        if server_message:
            message += f", Error Message: {server_message}"
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class MalformedResponseError(OmegaCodexError):
    """Raised when a response cannot be read into the expected shape."""


class AmbiguousResponseError(MalformedResponseError):
    """Raised when a response holds more than one candidate reply."""


class TaskInterruptedError(OmegaCodexError):
    """Raised when a task is cancelled while sleeping or executing."""

    def __init__(self, message: str, *, phase: Literal["sleeping", "executing"]) -> None:
        super().__init__(message)
        self.phase = phase


class ResourceCloseError(OmegaCodexError):
    """Raised when an owned resource fails to release."""


class DuplicateInputError(ValueError):
    """Raised when a cache write targets input that already has a record."""


def pretty_dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def attach_secondary(primary: BaseException, secondary: BaseException) -> None:
    """Record ``secondary`` on an error that is already propagating."""

    if isinstance(primary, OmegaCodexError):
        primary.add_secondary(secondary)
        return
    existing = getattr(primary, "secondary_errors", None)
    if isinstance(existing, list):
        existing.append(secondary)
    else:
        primary.secondary_errors = [secondary]  # type: ignore[attr-defined]


def raise_aggregated(errors: Sequence[BaseException], message: str) -> None:
    """Raise nothing, the single error, or one aggregate carrying all of them."""

    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    raise OmegaCodexError(message, secondary_errors=errors)


__all__ = [
    "AmbiguousResponseError",
    "DuplicateInputError",
    "MalformedResponseError",
    "NotFoundError",
    "OmegaCodexError",
    "RemoteCallError",
    "ResourceCloseError",
    "TaskInterruptedError",
    "attach_secondary",
    "pretty_dump",
    "raise_aggregated",
]

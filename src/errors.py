"""
Error taxonomy and translation.

Every failure surfaced by a reconciliation operation is exactly one of the
exceptions below. Collaborator failures (aiohttp, JSON decoding, timeouts)
are translated once with translate() and recorded by the operation's
ErrorReporter before being raised to the caller.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional, Type

import aiohttp

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"\b(\d{5,})\b")


class OntapError(RuntimeError):
    """Base error for all reconciliation failures."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class NotFoundError(OntapError):
    """A referenced object has no matching backend record."""

    kind = "not_found"


class AmbiguousReferenceError(OntapError):
    """A name matched more than one backend record."""

    kind = "ambiguous"


class InvalidStateError(OntapError):
    """An operation was invoked without required runtime context."""

    kind = "invalid_state"


class ValidationError(OntapError):
    """A requested field change violates the field's mutability policy."""

    kind = "validation"


class UnsupportedOperationError(OntapError):
    """The operation is not available for this resource kind."""

    kind = "unsupported"


class BackendError(OntapError):
    """The backend answered with a non-success status or an undecodable body."""

    kind = "backend"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, details=details)
        self.code = code

    @classmethod
    def from_response(
        cls, method: str, api: str, status_code: int, body: Any
    ) -> "BackendError":
        """
        Build an error from an ONTAP error response.

        ONTAP error bodies look like
        {"error": {"message": "...", "code": "6619337", "target": "..."}}.
        The numeric code is always kept in the message so callers can
        match on it.

        Args:
            method: HTTP verb of the failed call.
            api: API path of the failed call.
            status_code: HTTP status returned.
            body: Decoded response body (may be None or a non-dict).

        Returns:
            A BackendError carrying status code, backend code and raw body.
        """
        error: Dict[str, Any] = {}
        if isinstance(body, dict):
            error = body.get("error") or {}

        raw_message = error.get("message") or f"unexpected status {status_code}"
        code = error.get("code")
        if code is None:
            match = CODE_PATTERN.search(raw_message)
            if match:
                code = match.group(1)

        message = f"error on {method} {api}: {raw_message}"
        if code is not None:
            message += f", code: {code}"
        if error.get("target"):
            message += f", target: {error['target']}"

        return cls(
            message,
            status_code=status_code,
            details=body,
            code=str(code) if code is not None else None,
        )


class TransportError(OntapError):
    """The request could not be completed at the network level."""

    kind = "transport"


class TransitionTimeoutError(OntapError):
    """An awaited backend state transition was not observed in time."""

    kind = "timeout"

    def __init__(
        self,
        message: str,
        *,
        last_observed: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=last_observed)
        self.last_observed = last_observed


class OperationCancelledError(OntapError):
    """The caller cancelled the operation or its deadline passed."""

    kind = "cancelled"


def translate(exc: BaseException, context: str = "") -> OntapError:
    """
    Map a collaborator failure onto the error taxonomy.

    Args:
        exc: The exception raised by a collaborator.
        context: Short description of what was being attempted.

    Returns:
        The matching OntapError. OntapError instances are returned unchanged.
    """
    if isinstance(exc, OntapError):
        return exc

    prefix = f"{context}: " if context else ""

    if isinstance(exc, (json.JSONDecodeError, aiohttp.ContentTypeError)):
        return BackendError(f"{prefix}failed to decode response: {exc}")
    if isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        return TransportError(f"{prefix}{str(exc) or type(exc).__name__}")
    if isinstance(exc, asyncio.CancelledError):
        return OperationCancelledError(f"{prefix}operation cancelled")

    return BackendError(f"{prefix}{type(exc).__name__}: {exc}")


class ErrorReporter:
    """
    Records the single error of one operation and reports it once.

    Mirrors a diagnostics collector: the first error wins, later ones are
    logged at debug level only, and callers check has_error before doing
    more work.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.error: Optional[OntapError] = None
        self.summary: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def report(self, summary: str, error: BaseException) -> OntapError:
        """
        Record an error for this operation.

        Args:
            summary: One-line user-facing summary.
            error: The failure; translated if it is not an OntapError.

        Returns:
            The recorded (translated) error.
        """
        translated = translate(error, summary)
        if self.error is not None:
            logger.debug(
                f"{self.operation}: ignoring further error after first report: "
                f"{translated}"
            )
            return self.error

        self.error = translated
        self.summary = summary
        logger.error(f"{self.operation}: {summary}: {translated}")
        return translated

    def make_and_report_error(
        self,
        summary: str,
        detail: str,
        error_cls: Type[OntapError] = BackendError,
        **kwargs: Any,
    ) -> OntapError:
        """Build an error of the given class, record it and return it."""
        return self.report(summary, error_cls(detail, **kwargs))

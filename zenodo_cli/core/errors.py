"""Error taxonomy for zenodo-cli.

Every failure raised by the HTTP layer, the pagination driver or the
metadata validator derives from :class:`ZenodoError`.  The CLI maps these
onto process exit codes with :func:`exit_code_for`.

- TransportError: network, request-construction or body-read failure
- DecodeError: a successful response did not decode into the expected shape
- APIError: the server answered with status >= 400
- ValidationError: local metadata check failed before any request was sent
- TruncationError: pagination stopped at the result ceiling
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

TOKEN_HINT = "zenodo config set token <TOKEN>"


class ExitCode(IntEnum):
    """Process exit codes used by the CLI."""

    OK = 0
    API_ERROR = 1
    AUTH_ERROR = 2
    VALIDATION_ERROR = 3
    RATE_LIMITED = 4
    CANCELLED = 5


class ZenodoError(Exception):
    """Base class for all zenodo-cli errors."""


class TransportError(ZenodoError):
    """The request could not be sent or the response could not be read."""


class DecodeError(ZenodoError):
    """The response body did not match the expected JSON shape."""


@dataclass(frozen=True)
class FieldError:
    """A single field-level error reported by the API."""

    field: str
    message: str


class APIError(ZenodoError):
    """Error response from the Zenodo API.

    Attributes
    ----------
    status: int
        HTTP status code observed on the wire.
    message: str
        Message from the error envelope, the raw body, or the status phrase.
    field_errors: tuple of FieldError
        Field-level errors in the order the server listed them.
    """

    def __init__(
        self,
        status: int,
        message: str,
        field_errors: Sequence[FieldError] = (),
    ) -> None:
        self._status = status
        self._message = message
        self._field_errors: Tuple[FieldError, ...] = tuple(field_errors)
        super().__init__(self._render())

    @property
    def status(self) -> int:
        return self._status

    @property
    def message(self) -> str:
        return self._message

    @property
    def field_errors(self) -> Tuple[FieldError, ...]:
        return self._field_errors

    def _render(self) -> str:
        text = f"API error {self._status}: {self._message}"
        for detail in self._field_errors:
            text += f"\n  - {detail.field}: {detail.message}"
        return text

    def likely_auth_error(self) -> bool:
        """Return True if a 400 response looks like it was caused by a bad token.

        Zenodo answers some authenticated endpoints with a 400 validation
        error whose field entries carry empty messages when the token is
        malformed.
        """
        if self._status != 400:
            return False
        return any(d.field and not d.message for d in self._field_errors)

    def hint(self) -> str:
        """Return a user-facing suggestion for this status, or an empty string."""
        if self._status == 400:
            if self.likely_auth_error():
                return (
                    "This may be caused by an invalid API token. "
                    f"Check your token with: {TOKEN_HINT}"
                )
            return ""
        if self._status == 401:
            return f"Check that your token is valid. Set it with: {TOKEN_HINT}"
        if self._status == 403:
            return (
                "Your token may lack required scopes (deposit:write, deposit:actions). "
                "Generate a new token at https://zenodo.org/account/settings/applications/"
            )
        if self._status == 404:
            return "Record not found. Check the ID and ensure you have access."
        if self._status == 429:
            return "Rate limit exceeded. Wait a minute and reduce request frequency."
        return ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary for structured error output."""
        data: Dict[str, Any] = {"status": self._status, "message": self._message}
        if self._field_errors:
            data["errors"] = [
                {"field": d.field, "message": d.message} for d in self._field_errors
            ]
        hint = self.hint()
        if hint:
            data["hint"] = hint
        return data


class ValidationError(ZenodoError):
    """Local metadata validation failed; no request was made."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("metadata validation failed")


class TruncationError(ZenodoError):
    """Pagination stopped at the result ceiling before reaching the total."""

    def __init__(self, limit: int, total: int) -> None:
        self.limit = limit
        self.total = total
        super().__init__(f"results truncated at {limit} (total: {total}); narrow your search")


def _status_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return f"HTTP {status}"


def _parse_envelope(body: bytes) -> Optional[Tuple[str, List[FieldError]]]:
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None

    message = data.get("message") or ""
    if not isinstance(message, str):
        message = str(message)

    details: List[FieldError] = []
    raw_errors = data.get("errors") or []
    if not isinstance(raw_errors, list):
        return None
    for item in raw_errors:
        if not isinstance(item, dict):
            return None
        details.append(
            FieldError(
                field=str(item.get("field") or ""),
                message=str(item.get("message") or ""),
            )
        )
    return message, details


def parse_api_error(status: int, body: bytes) -> APIError:
    """Build an :class:`APIError` from a failed response.

    The structured envelope ``{status, message, errors: [{field, message}]}``
    is used when the body parses as one; otherwise the raw body text becomes
    the message, or the standard reason phrase when the body is empty.  The
    status observed on the wire always wins over one in the body.
    """
    parsed = _parse_envelope(body) if body else None
    if parsed is not None:
        message, details = parsed
    else:
        message = body.decode("utf-8", errors="replace") if body else ""
        details = []
        if not message:
            message = _status_phrase(status)

    error = APIError(status, message, details)

    hint = error.hint()
    if hint:
        logger.warning(hint)

    return error


def exit_code_for(exc: BaseException) -> int:
    """Map an exception onto the CLI exit code."""
    if isinstance(exc, APIError):
        if exc.status in (401, 403):
            return ExitCode.AUTH_ERROR
        if exc.likely_auth_error():
            return ExitCode.AUTH_ERROR
        if exc.status == 429:
            return ExitCode.RATE_LIMITED
        return ExitCode.API_ERROR
    if isinstance(exc, ValidationError):
        return ExitCode.VALIDATION_ERROR
    return ExitCode.API_ERROR

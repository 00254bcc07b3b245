from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_CONFIGURED = "not_configured"
    INVALID_REFERENCE = "invalid_reference"


@dataclass(frozen=True, slots=True)
class UpstreamUnavailable:
    """A source adapter or AI provider answered non-2xx, timed out, or failed on the wire.

    Always recovered locally and handed back as a value; never raised.
    """

    collaborator: str
    message: str
    status_code: int | None = None

    kind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __str__(self) -> str:
        return f"{self.collaborator}: {self.message}"


@dataclass(frozen=True, slots=True)
class MalformedResponse:
    """An upstream payload could not be parsed into the expected shape."""

    collaborator: str
    message: str

    kind = ErrorKind.MALFORMED_RESPONSE

    def __str__(self) -> str:
        return f"{self.collaborator}: {self.message}"


class InvalidReference(LookupError):
    """Base for caller bugs: addressing an identifier that does not exist."""


class NotFound(InvalidReference):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")

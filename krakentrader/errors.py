"""Exception taxonomy and venue diagnostic parsing.

The venue reports problems as compact colon-delimited codes such as
``EOrder:Invalid price`` or ``WGeneral:rate limit:retry later``.  Each code is
parsed into a :class:`Diagnostic` and a response carrying diagnostics is
surfaced to callers as a :class:`ResponseError`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, List, Sequence


class Severity(enum.Enum):
    """Severity of a venue diagnostic."""

    WARNING = "Warning"
    ERROR = "Error"


@dataclass(frozen=True)
class Diagnostic:
    """Single parsed venue diagnostic."""

    severity: Severity
    category: str
    type: str
    extra: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        text = f"[{self.category}] {self.severity.value}: {self.type}"
        if self.extra.strip():
            text += f" ({self.extra})"
        return text


def parse_diagnostic(code: str) -> Diagnostic:
    """Parse ``<S><Category>:<Type>[:<Extra>]`` into a :class:`Diagnostic`.

    Only ``E`` as the first character marks an error; anything else is
    treated as a warning.  Colons beyond the third field stay in ``extra``.
    """

    head, _, rest = code.partition(":")
    type_, _, extra = rest.partition(":")
    severity = Severity.ERROR if head[:1] == "E" else Severity.WARNING
    return Diagnostic(severity=severity, category=head[1:], type=type_, extra=extra)


class KrakenError(Exception):
    """Base class for every error raised by :mod:`krakentrader`."""


class TransportError(KrakenError):
    """Network or HTTP level failure talking to the venue."""


class ResponseError(KrakenError):
    """The venue answered with diagnostics that must not be ignored."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] = ()) -> None:
        super().__init__(message)
        self.diagnostics: List[Diagnostic] = list(diagnostics)

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)

    @classmethod
    def from_diagnostics(cls, diagnostics: Iterable[Diagnostic]) -> "ResponseError":
        diagnostics = list(diagnostics)
        if len(diagnostics) == 1:
            return cls(str(diagnostics[0]), diagnostics)

        errors = sum(1 for d in diagnostics if d.is_error)
        warnings = len(diagnostics) - errors
        if errors and warnings:
            summary = f"{errors} errors and {warnings} warnings"
        elif errors:
            summary = f"{errors} errors"
        else:
            summary = f"{warnings} warnings"
        lines = [summary] + [f"  {d}" for d in diagnostics]
        return cls("\n".join(lines), diagnostics)


class InsufficientBookDepth(KrakenError):
    """The order book side ran out before a price could be selected."""


class InvalidConfiguration(KrakenError, ValueError):
    """Construction-time misuse: bad rate gate, malformed request or config."""


__all__ = [
    "Severity",
    "Diagnostic",
    "parse_diagnostic",
    "KrakenError",
    "TransportError",
    "ResponseError",
    "InsufficientBookDepth",
    "InvalidConfiguration",
]

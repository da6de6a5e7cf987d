"""Structured diagnostics and warning policy for interpreter recoveries."""

from __future__ import annotations

import logging
import time
import warnings
from collections import deque
from dataclasses import dataclass, field

from shapeweave.errors import DiagnosticError

logger = logging.getLogger(__name__)

KNOWN_CODES: dict[str, str] = {
    "S01": "schema could not be loaded",
    "X01": "expression evaluation failed",
    "X02": "expression references a missing variable",
    "H01": "helper not found",
    "H02": "helper execution failed",
    "H03": "definition failed to compile",
    "R01": "reference could not be resolved",
    "L01": "iteration limit exceeded",
    "N01": "unknown node type",
    "A01": "asset failed to load",
}

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ShapeweaveWarning(UserWarning):
    """Warning with a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}")


@dataclass(frozen=True)
class WarningPolicy:
    """Controls how individual diagnostic codes are handled."""

    warn_as_error: frozenset[str] = frozenset()
    suppress: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Diagnostic:
    level: str
    code: str
    text: str
    path: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "code": self.code,
            "text": self.text,
            "path": self.path,
            "timestamp": self.timestamp,
        }


class DiagnosticLog:
    """Bounded, ordered record of every recovery made during a run.

    Recoveries never raise. Each record is appended to the log, mirrored to
    the ``shapeweave`` logger and, unless the code is suppressed, issued as a
    ``ShapeweaveWarning``. Codes listed in ``policy.warn_as_error`` only take
    effect through :meth:`raise_for_policy`, once the walk has finished.
    """

    def __init__(self, policy: WarningPolicy | None = None, cap: int = 200) -> None:
        self.policy = policy or WarningPolicy()
        self.cap = cap
        self.messages: deque[Diagnostic] = deque(maxlen=cap)
        self.counts: dict[str, int] = {}
        # first record per code, kept past eviction from ``messages``
        self.first: dict[str, Diagnostic] = {}

    def record(
        self,
        code: str,
        text: str,
        *,
        level: str = "warning",
        path: str | None = None,
    ) -> Diagnostic:
        entry = Diagnostic(level=level, code=code, text=text, path=path)
        self.messages.append(entry)
        self.first.setdefault(code, entry)
        self.counts[code] = self.counts.get(code, 0) + 1

        logger.log(_LEVELS.get(level, logging.WARNING), "[%s] %s", code, text)
        if code not in self.policy.suppress and level in ("warning", "error"):
            warnings.warn(ShapeweaveWarning(code, text), stacklevel=3)
        return entry

    def info(self, text: str, *, path: str | None = None) -> Diagnostic:
        """Record a user-facing note (helper ``log`` calls, thoughts)."""
        return self.record("I00", text, level="info", path=path)

    def codes(self) -> set[str]:
        return set(self.counts)

    def count(self, code: str) -> int:
        return self.counts.get(code, 0)

    def clear(self) -> None:
        self.messages.clear()
        self.counts.clear()
        self.first.clear()

    def raise_for_policy(self) -> None:
        """Raise ``DiagnosticError`` if any recorded code is configured as an error."""
        escalated = sorted(self.codes() & self.policy.warn_as_error)
        if escalated:
            first = next(d for code, d in self.first.items() if code in escalated)
            raise DiagnosticError(f"[{first.code}] {first.text}")


def parse_code_list(raw: str) -> frozenset[str]:
    """Parse a comma-separated string of diagnostic codes and validate them.

    Raises ``ValueError`` for unknown codes.
    """
    codes: set[str] = set()
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        if token not in KNOWN_CODES:
            raise ValueError(f"Unknown diagnostic code: {token!r} (known: {sorted(KNOWN_CODES)})")
        codes.add(token)
    return frozenset(codes)

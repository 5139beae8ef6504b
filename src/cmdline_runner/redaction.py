"""Secret redaction for captured output.

Every captured line passes through redact() before it is stored in a
RunResult or shown on a progress sink.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

__all__ = ["REDACTED", "Redactions", "redact"]

REDACTED = "[redacted]"


def redact(line: str, secrets: Iterable[str]) -> str:
    """Replace every literal occurrence of each secret with REDACTED.

    Secrets are applied one after another in iteration order. Empty secrets
    are ignored.

    Args:
        line: Text to sanitize
        secrets: Literal substrings to hide

    Returns:
        The sanitized line
    """
    for secret in secrets:
        if secret:
            line = line.replace(secret, REDACTED)
    return line


class Redactions:
    """Insertion-ordered set of secrets; duplicates and empty strings are dropped."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        self._secrets: dict[str, None] = {}
        self.update(secrets)

    def add(self, secret: str) -> None:
        if secret:
            self._secrets.setdefault(secret, None)

    def update(self, secrets: Iterable[str]) -> None:
        for secret in secrets:
            self.add(secret)

    def apply(self, line: str) -> str:
        return redact(line, self._secrets)

    def as_tuple(self) -> tuple[str, ...]:
        return tuple(self._secrets)

    def __iter__(self) -> Iterator[str]:
        return iter(self._secrets)

    def __len__(self) -> int:
        return len(self._secrets)

    def __contains__(self, secret: object) -> bool:
        return secret in self._secrets

    def __repr__(self) -> str:
        # never print the secrets themselves
        return f"Redactions(count={len(self)})"

"""Example values for regex-constrained fields.

Two sources, tried in order: a table of common patterns with hand-picked
examples, then a template builder for flat patterns made of character
classes, escapes and literal characters with simple quantifiers. Every
candidate is checked with :func:`re.fullmatch` before it is returned; a
pattern neither source can satisfy yields no example.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_DELIMITED = re.compile(r"^([/~#!@])(.+)\1[a-zA-Z]*$", re.DOTALL)


def clean_pattern(pattern: str) -> str:
    """Strip ``/.../i`` style delimiters and flags."""
    match = _DELIMITED.match(pattern.strip())
    return match.group(2) if match else pattern.strip()


DEFAULT_COMMON_EXAMPLES: Mapping[str, tuple[str, str]] = {
    r"^\d+$": ("123456", "Must contain only digits."),
    r"^[0-9]+$": ("123456", "Must contain only digits."),
    r"^[a-zA-Z]+$": ("example", "Must contain only letters."),
    r"^[a-zA-Z0-9]+$": ("example123", "Must contain only letters and numbers."),
    r"^[a-zA-Z0-9_-]+$": ("example_123", "Must contain only letters, numbers, underscores and hyphens."),
    r"^\w+$": ("example_123", "Must contain only word characters."),
    r"^.{10}-.{10}$": ("abcd123456-xyz7890123", "Must be 10 characters, a hyphen, then 10 characters."),
    r"^[0-9]{2,4}$": ("1234", "Must be 2 to 4 digits."),
    r"^[A-Z]{2,3}$": ("ABC", "Must be 2 to 3 uppercase letters."),
    r"^[a-z]{3,}$": ("example", "Must be at least 3 lowercase letters."),
    r"^\+?[1-9]\d{1,14}$": ("+1234567890", "Must be a valid phone number."),
    r"^[a-z0-9]+(?:-[a-z0-9]+)*$": ("example-slug", "Must be a lowercase slug."),
    r"^#?[0-9a-fA-F]{6}$": ("#1a2b3c", "Must be a hex colour."),
}

# Sample text per character class, long enough for the widest quantifier we emit.
_CLASS_SAMPLES: Mapping[str, str] = {
    r"\d": "1234567890",
    "[0-9]": "1234567890",
    "[1-9]": "123456789",
    "[a-z]": "abcdefghij",
    "[A-Z]": "ABCDEFGHIJ",
    "[a-zA-Z]": "abcdefghij",
    "[A-Za-z]": "abcdefghij",
    "[a-zA-Z0-9]": "abc1234567",
    "[A-Za-z0-9]": "abc1234567",
    "[A-Z0-9]": "ABC1234567",
    "[a-z0-9]": "abc1234567",
    "[0-9a-f]": "0123456789abcdef",
    "[0-9a-fA-F]": "0123456789abcdef",
    "[a-fA-F0-9]": "abcdef0123456789",
    r"\w": "abc_123456",
    ".": "abcdefghij",
    r"\s": " ",
}

_ATOM = re.compile(
    r"""
    (?P<atom>\\[dws]|\[[^\]]+\]|\\.|[^\\\[\](){}|*+?^$])
    (?P<quant>\{\d+(?:,\d*)?\}|[*+?])?
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class RegexExampleLibrary:
    """Looks up or builds an example string that matches a regex."""

    common: Mapping[str, tuple[str, str]] = field(default_factory=lambda: dict(DEFAULT_COMMON_EXAMPLES))
    class_samples: Mapping[str, str] = field(default_factory=lambda: dict(_CLASS_SAMPLES))

    def example_for(self, pattern: str) -> Optional[str]:
        """An example matching ``pattern``, or None when none can be found."""
        cleaned = clean_pattern(pattern)
        try:
            compiled = re.compile(cleaned)
        except re.error as e:
            logger.debug(f"Invalid regex {pattern!r}: {e}")
            return None

        candidates = []
        known = self.common.get(cleaned)
        if known is not None:
            candidates.append(known[0])
        built = self._build(cleaned)
        if built is not None:
            candidates.append(built)

        for candidate in candidates:
            if compiled.fullmatch(candidate):
                return candidate
        return None

    def description_for(self, pattern: str) -> str:
        cleaned = clean_pattern(pattern)
        known = self.common.get(cleaned)
        if known is not None:
            return known[1]
        exact = re.search(r"\{(\d+)\}", cleaned)
        ranged = re.search(r"\{(\d+),(\d+)\}", cleaned)
        open_ended = re.search(r"\{(\d+),\}", cleaned)
        if exact:
            return f"Must be exactly {exact.group(1)} characters matching pattern: {cleaned}"
        if ranged:
            return f"Must be {ranged.group(1)} to {ranged.group(2)} characters matching pattern: {cleaned}"
        if open_ended:
            return f"Must be at least {open_ended.group(1)} characters matching pattern: {cleaned}"
        return f"Must match the pattern: {cleaned}"

    def _build(self, pattern: str) -> Optional[str]:
        """Build a candidate for a flat pattern; None for groups or alternation."""
        body = pattern
        if body.startswith("^"):
            body = body[1:]
        if body.endswith("$") and not body.endswith("\\$"):
            body = body[:-1]
        if any(token in body for token in ("(", ")", "|")):
            return None

        parts: list[str] = []
        position = 0
        while position < len(body):
            match = _ATOM.match(body, position)
            if match is None:
                return None
            sample = self._sample(match.group("atom"))
            if sample is None:
                return None
            count = _repeat_count(match.group("quant"))
            if count is None:
                return None
            parts.append((sample * (count // max(len(sample), 1) + 1))[:count])
            position = match.end()
        return "".join(parts)

    def _sample(self, atom: str) -> Optional[str]:
        if atom in self.class_samples:
            return self.class_samples[atom]
        if atom.startswith("\\") and len(atom) == 2:
            return atom[1]
        if atom.startswith("[") and atom.endswith("]"):
            inner = atom[1:-1]
            if inner.startswith("^"):
                return None
            first = inner.lstrip("\\")[:1]
            return first or None
        return atom


def _repeat_count(quantifier: Optional[str]) -> Optional[int]:
    if not quantifier:
        return 1
    if quantifier in ("+", "*"):
        return 6
    if quantifier == "?":
        return 1
    low, sep, high = quantifier.strip("{}").partition(",")
    try:
        minimum = int(low)
        if not sep:
            return minimum
        if high:
            return min(max(minimum, 6), int(high))
    except ValueError:
        return None
    return max(minimum, 6)

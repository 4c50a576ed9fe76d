"""Mail nickname normalizer.

Turns a raw mail nickname (``Alias``) into one Exchange will accept and,
when the raw value had to change, appends a random numeric suffix so that
several lossy inputs (``"sales team"``, ``"sales/team"``) do not collapse
onto the same nickname.

Rules applied in order
----------------------
1. Drop every character in ``FORBIDDEN_NICKNAME_CHARACTERS`` in a single
   filtering pass.
2. Strip every leading and trailing period.  Filtering can expose new
   boundary periods (``"!.x"``), so the strip runs after the filter.
3. Cut to ``NORMALIZED_NICKNAME_LENGTH`` characters and strip any trailing
   period the cut exposed.
4. If the result differs from the raw value, append a suffix drawn from
   ``SUFFIX_RANGE`` that is not yet in the run's ``CollisionRegistry``.

Steps 1-3 are :func:`normalize_nickname` and are idempotent.  Every string,
including ``""``, produces a result; nothing here raises.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, Protocol

from exo_housekeeping.core.constants import (
    FORBIDDEN_NICKNAME_CHARACTERS,
    MAX_NICKNAME_LENGTH,
    NORMALIZED_NICKNAME_LENGTH,
    SUFFIX_ATTEMPTS,
    SUFFIX_RANGE,
    WIDE_SUFFIX_RANGE,
)

logger = logging.getLogger(__name__)

# str.translate table mapping every forbidden code point to None
_FORBIDDEN_TABLE: dict[int, None] = {ord(c): None for c in FORBIDDEN_NICKNAME_CHARACTERS}


class RandomSource(Protocol):
    """Anything with ``randrange`` (``random.Random`` qualifies)."""

    def randrange(self, start: int, stop: int) -> int:
        ...


@dataclass(frozen=True)
class SanitizationResult:
    """Outcome of sanitizing one nickname."""

    original: str
    suggested: str
    was_modified: bool


class CollisionRegistry:
    """Nicknames already suggested or assigned during one run.

    The blank nickname is always reported as taken: blank ``SuggestedAlias``
    cells mark address-only rows in the alias report.
    """

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._taken: set[str] = set()
        for value in initial:
            self.add(value)

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, str):
            return False
        if not value.strip():
            return True
        return value.lower() in self._taken

    def __len__(self) -> int:
        return len(self._taken)

    def add(self, value: str) -> None:
        if value and value.strip():
            # Exchange compares nicknames case-insensitively
            self._taken.add(value.lower())


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def normalize_nickname(raw: str) -> str:
    """Return *raw* with forbidden characters and boundary periods removed.

    The result is at most ``NORMALIZED_NICKNAME_LENGTH`` characters long and
    may be ``""`` when *raw* held nothing but forbidden characters and
    periods.
    """
    candidate = raw.translate(_FORBIDDEN_TABLE).strip(".")
    if len(candidate) > NORMALIZED_NICKNAME_LENGTH:
        candidate = candidate[:NORMALIZED_NICKNAME_LENGTH].rstrip(".")
    return candidate


def is_valid_nickname(value: str) -> bool:
    """Return ``True`` if Exchange would accept *value* as a mail nickname."""
    if not value or len(value) > MAX_NICKNAME_LENGTH:
        return False
    if value.startswith(".") or value.endswith("."):
        return False
    return not any(c in FORBIDDEN_NICKNAME_CHARACTERS for c in value)


def _draw_suffixed(base: str, registry: CollisionRegistry, rng: RandomSource) -> str:
    start, stop = SUFFIX_RANGE
    for _ in range(SUFFIX_ATTEMPTS):
        candidate = f"{base}{rng.randrange(start, stop)}"
        if candidate not in registry:
            return candidate

    logger.warning(
        "Suffix range %d-%d exhausted for nickname base %r; widening to %d-%d",
        start, stop - 1, base, WIDE_SUFFIX_RANGE[0], WIDE_SUFFIX_RANGE[1] - 1,
    )
    start, stop = WIDE_SUFFIX_RANGE
    for _ in range(SUFFIX_ATTEMPTS):
        candidate = f"{base}{rng.randrange(start, stop)}"
        if candidate not in registry:
            return candidate

    for number in range(start, stop):
        candidate = f"{base}{number}"
        if candidate not in registry:
            return candidate

    # 9000 collisions on one base within a run; keep counting past the range
    number = stop
    while _fit_suffix(base, number) in registry:
        number += 1
    return _fit_suffix(base, number)


def _fit_suffix(base: str, number: int) -> str:
    """Join *base* and *number*, cutting *base* so the result stays within
    ``MAX_NICKNAME_LENGTH``."""
    suffix = str(number)
    room = MAX_NICKNAME_LENGTH - len(suffix)
    if len(base) > room:
        base = base[:room].rstrip(".")
    return f"{base}{suffix}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sanitize(
    original: str,
    registry: CollisionRegistry,
    *,
    rng: RandomSource | None = None,
) -> SanitizationResult:
    """Normalize *original* and, if it changed, make it unique within *registry*.

    Parameters
    ----------
    original:
        Raw nickname as read from the directory.
    registry:
        Nicknames already handed out this run.  The returned suggestion is
        added to it.
    rng:
        Source of the disambiguation suffix.  Defaults to the ``random``
        module's shared generator.

    Returns
    -------
    SanitizationResult
        ``was_modified`` is ``False`` only when *original* already satisfied
        every rule, in which case ``suggested`` is *original* unchanged.
        An empty *original* counts as modified and gets a bare numeric
        suggestion.
    """
    candidate = normalize_nickname(original)

    if candidate == original and candidate:
        registry.add(original)
        return SanitizationResult(original=original, suggested=original, was_modified=False)

    suggested = _draw_suffixed(candidate, registry, rng if rng is not None else random)
    registry.add(suggested)
    return SanitizationResult(original=original, suggested=suggested, was_modified=True)


class NicknameSanitizer:
    """Per-run sanitizer owning one ``CollisionRegistry`` and random source.

    Usage::

        sanitizer = NicknameSanitizer(rng=random.Random(42))
        sanitizer.reserve(existing_aliases)
        result = sanitizer.sanitize("sales team!")
    """

    def __init__(
        self,
        registry: CollisionRegistry | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.registry = registry if registry is not None else CollisionRegistry()
        self.rng = rng if rng is not None else random.Random()

    def reserve(self, nicknames: Iterable[str]) -> None:
        """Mark *nicknames* as taken without sanitizing them."""
        for nickname in nicknames:
            self.registry.add(nickname)

    def sanitize(self, original: str) -> SanitizationResult:
        return sanitize(original, self.registry, rng=self.rng)

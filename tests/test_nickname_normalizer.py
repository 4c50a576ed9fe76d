"""Tests for exo_housekeeping/normalization/nickname_normalizer.py."""
from __future__ import annotations

import logging
import random

import pytest

from conftest import LowestRandom, ScriptedRandom
from exo_housekeeping.core.constants import FORBIDDEN_NICKNAME_CHARACTERS
from exo_housekeeping.normalization.nickname_normalizer import (
    CollisionRegistry,
    NicknameSanitizer,
    SanitizationResult,
    is_valid_nickname,
    normalize_nickname,
    sanitize,
)

_SAMPLES = [
    "",
    ".",
    "...",
    "!!!",
    "@#$%",
    "sales team!",
    ".archive.",
    "validAlias",
    "a.b.c",
    "!.x",
    "x.!",
    "Finance (EMEA)",
    "john.o'brien",
    "[PF] Projects/2024",
    "a" * 59 + "." + "b" * 10,
    "x" * 200,
    "ümlaut-folder",
    " leading space",
    "\\\\server\\share",
]


# ---------------------------------------------------------------------------
# normalize_nickname
# ---------------------------------------------------------------------------


class TestNormalizeNickname:
    def test_forbidden_characters_removed(self) -> None:
        assert normalize_nickname("sales team!") == "salesteam"

    def test_every_forbidden_character_removed(self) -> None:
        raw = "a" + "".join(sorted(FORBIDDEN_NICKNAME_CHARACTERS)) + "b"
        assert normalize_nickname(raw) == "ab"

    def test_forbidden_set_has_thirty_characters(self) -> None:
        assert len(FORBIDDEN_NICKNAME_CHARACTERS) == 30

    def test_boundary_periods_trimmed(self) -> None:
        assert normalize_nickname(".archive.") == "archive"

    def test_repeated_boundary_periods_trimmed(self) -> None:
        assert normalize_nickname("...archive...") == "archive"

    def test_periods_exposed_by_filtering_trimmed(self) -> None:
        assert normalize_nickname("!.x") == "x"
        assert normalize_nickname("x.!") == "x"
        assert normalize_nickname("(.inbox.)") == "inbox"

    def test_inner_periods_kept(self) -> None:
        assert normalize_nickname("a.b.c") == "a.b.c"

    def test_all_forbidden_becomes_empty(self) -> None:
        assert normalize_nickname("@#$%") == ""

    def test_single_period_becomes_empty(self) -> None:
        assert normalize_nickname(".") == ""

    def test_long_value_truncated_to_sixty(self) -> None:
        assert normalize_nickname("x" * 200) == "x" * 60

    def test_truncation_does_not_leave_trailing_period(self) -> None:
        raw = "a" * 59 + "." + "b" * 10
        assert normalize_nickname(raw) == "a" * 59

    def test_non_ascii_letters_kept(self) -> None:
        assert normalize_nickname("ümlaut-folder") == "ümlaut-folder"

    def test_empty_string(self) -> None:
        assert normalize_nickname("") == ""

    @pytest.mark.parametrize("raw", _SAMPLES)
    def test_idempotent(self, raw: str) -> None:
        once = normalize_nickname(raw)
        assert normalize_nickname(once) == once


# ---------------------------------------------------------------------------
# is_valid_nickname
# ---------------------------------------------------------------------------


class TestIsValidNickname:
    def test_plain_alias_valid(self) -> None:
        assert is_valid_nickname("validAlias") is True

    def test_empty_invalid(self) -> None:
        assert is_valid_nickname("") is False

    def test_sixty_four_chars_valid(self) -> None:
        assert is_valid_nickname("a" * 64) is True

    def test_sixty_five_chars_invalid(self) -> None:
        assert is_valid_nickname("a" * 65) is False

    def test_boundary_period_invalid(self) -> None:
        assert is_valid_nickname(".a") is False
        assert is_valid_nickname("a.") is False

    def test_forbidden_character_invalid(self) -> None:
        assert is_valid_nickname("a b") is False
        assert is_valid_nickname("a@b") is False


# ---------------------------------------------------------------------------
# sanitize: concrete scenarios
# ---------------------------------------------------------------------------


class TestSanitizeScenarios:
    def test_space_and_bang_removed_then_suffixed(self) -> None:
        result = sanitize("sales team!", CollisionRegistry(), rng=ScriptedRandom([734]))
        assert result == SanitizationResult(
            original="sales team!", suggested="salesteam734", was_modified=True
        )

    def test_boundary_periods_trimmed_then_suffixed(self) -> None:
        result = sanitize(".archive.", CollisionRegistry(), rng=ScriptedRandom([256]))
        assert result.suggested == "archive256"
        assert result.was_modified is True

    def test_clean_alias_unchanged(self) -> None:
        rng = ScriptedRandom([])
        result = sanitize("validAlias", CollisionRegistry(), rng=rng)
        assert result.suggested == "validAlias"
        assert result.was_modified is False
        assert rng.calls == []

    def test_all_forbidden_gets_numeric_suggestion(self) -> None:
        result = sanitize("@#$%", CollisionRegistry(), rng=ScriptedRandom([534]))
        assert result.suggested == "534"
        assert result.was_modified is True

    def test_empty_input_gets_numeric_suggestion(self) -> None:
        result = sanitize("", CollisionRegistry(), rng=ScriptedRandom([101]))
        assert result.suggested == "101"
        assert result.was_modified is True

    def test_long_alias_truncated_before_suffix(self) -> None:
        result = sanitize("x" * 70, CollisionRegistry(), rng=ScriptedRandom([998]))
        assert result.suggested == "x" * 60 + "998"
        assert len(result.suggested) == 63

    def test_suffix_drawn_from_101_to_998(self) -> None:
        rng = ScriptedRandom([500])
        sanitize("a b", CollisionRegistry(), rng=rng)
        assert rng.calls == [(101, 999)]

    def test_default_random_source(self) -> None:
        result = sanitize("sales team", CollisionRegistry())
        suffix = int(result.suggested[len("salesteam"):])
        assert 101 <= suffix < 999


# ---------------------------------------------------------------------------
# sanitize: collisions and the registry
# ---------------------------------------------------------------------------


class TestSanitizeCollisions:
    def test_same_candidate_gets_distinct_suggestions(self) -> None:
        registry = CollisionRegistry()
        rng = ScriptedRandom([500, 500, 501])
        first = sanitize("sales team", registry, rng=rng)
        second = sanitize("sales/team", registry, rng=rng)
        assert first.suggested == "salesteam500"
        assert second.suggested == "salesteam501"

    def test_redraw_when_suggestion_already_registered(self) -> None:
        registry = CollisionRegistry(["salesteam734"])
        result = sanitize("sales team!", registry, rng=ScriptedRandom([734, 735]))
        assert result.suggested == "salesteam735"

    def test_registry_is_case_insensitive(self) -> None:
        registry = CollisionRegistry(["SalesTeam500"])
        result = sanitize("sales team", registry, rng=ScriptedRandom([500, 501]))
        assert result.suggested == "salesteam501"

    def test_suggestion_added_to_registry(self) -> None:
        registry = CollisionRegistry()
        result = sanitize("a b", registry, rng=ScriptedRandom([200]))
        assert result.suggested in registry
        assert len(registry) == 1

    def test_unmodified_alias_added_to_registry(self) -> None:
        registry = CollisionRegistry()
        sanitize("validAlias", registry)
        assert "validalias" in registry

    def test_wide_range_after_exhaustion(self, caplog: pytest.LogCaptureFixture) -> None:
        registry = CollisionRegistry(["x101"])
        with caplog.at_level(logging.WARNING):
            result = sanitize("x!", registry, rng=LowestRandom())
        assert result.suggested == "x1000"
        assert "exhausted" in caplog.text

    def test_scan_after_wide_range_exhaustion(self) -> None:
        registry = CollisionRegistry(["x101", "x1000"])
        result = sanitize("x!", registry, rng=LowestRandom())
        assert result.suggested == "x1001"

    def test_counting_past_wide_range_stays_within_max_length(self) -> None:
        base = "x" * 60
        registry = CollisionRegistry(f"{base}{n}" for n in range(101, 10000))
        result = sanitize(base + "!", registry, rng=LowestRandom())
        assert result.suggested == "x" * 59 + "10000"
        assert is_valid_nickname(result.suggested)

    def test_cut_base_drops_exposed_trailing_period(self) -> None:
        base = "x" * 58 + ".y"
        registry = CollisionRegistry(f"{base}{n}" for n in range(101, 10000))
        result = sanitize(base + "!", registry, rng=LowestRandom())
        assert result.suggested == "x" * 58 + "10000"
        assert is_valid_nickname(result.suggested)

    def test_many_collisions_stay_unique(self) -> None:
        registry = CollisionRegistry()
        rng = random.Random(7)
        suggestions = {sanitize("dup licate", registry, rng=rng).suggested for _ in range(500)}
        assert len(suggestions) == 500


class TestCollisionRegistry:
    def test_blank_is_always_taken(self) -> None:
        registry = CollisionRegistry()
        assert "" in registry
        assert "   " in registry

    def test_blank_not_stored(self) -> None:
        registry = CollisionRegistry(["", "  "])
        assert len(registry) == 0

    def test_non_string_not_contained(self) -> None:
        assert 5 not in CollisionRegistry(["5"])


# ---------------------------------------------------------------------------
# Invariants over a sample of inputs
# ---------------------------------------------------------------------------


class TestSanitizeInvariants:
    @pytest.mark.parametrize("raw", _SAMPLES)
    def test_suggestion_is_valid_nickname(self, raw: str) -> None:
        result = sanitize(raw, CollisionRegistry(), rng=random.Random(1))
        assert is_valid_nickname(result.suggested)

    @pytest.mark.parametrize("raw", _SAMPLES)
    def test_modified_iff_normalization_changed(self, raw: str) -> None:
        result = sanitize(raw, CollisionRegistry(), rng=random.Random(1))
        expected = normalize_nickname(raw) != raw or raw == ""
        assert result.was_modified is expected

    @pytest.mark.parametrize("raw", ["", ".", "...", "!!!", ".@.", "  ", "()[]"])
    def test_forbidden_and_periods_only_produce_non_empty(self, raw: str) -> None:
        result = sanitize(raw, CollisionRegistry(), rng=random.Random(3))
        assert result.was_modified is True
        assert result.suggested
        assert result.suggested.isdigit()

    @pytest.mark.parametrize("raw", ["validAlias", "a.b", "x" * 60, "Finance-EMEA_01"])
    def test_clean_input_unchanged(self, raw: str) -> None:
        result = sanitize(raw, CollisionRegistry(), rng=random.Random(3))
        assert result.was_modified is False
        assert result.suggested == raw


# ---------------------------------------------------------------------------
# NicknameSanitizer
# ---------------------------------------------------------------------------


class TestNicknameSanitizer:
    def test_same_seed_same_suggestions(self) -> None:
        first = NicknameSanitizer(rng=random.Random(42))
        second = NicknameSanitizer(rng=random.Random(42))
        assert first.sanitize("a b").suggested == second.sanitize("a b").suggested

    def test_reserve_blocks_existing_nickname(self) -> None:
        sanitizer = NicknameSanitizer(rng=ScriptedRandom([300, 301]))
        sanitizer.reserve(["ab300"])
        assert sanitizer.sanitize("a b").suggested == "ab301"

    def test_registry_shared_across_calls(self) -> None:
        sanitizer = NicknameSanitizer(rng=ScriptedRandom([300, 300, 302]))
        assert sanitizer.sanitize("a b").suggested == "ab300"
        assert sanitizer.sanitize("a/b").suggested == "ab302"

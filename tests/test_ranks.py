"""
tests/test_ranks.py — Rank Resolver Tests
==========================================
Pure-function tests for zeclub.engine.ranks: tier boundaries, progress
percentage and monotonicity over experience.
"""

from __future__ import annotations

import pytest

from zeclub.database.models import User
from zeclub.engine.ranks import (
    RANK_NAMES,
    RANK_TIERS,
    apply_rank,
    is_rank_name,
    rank_index,
    resolve_rank,
)


class TestTierBoundaries:
    @pytest.mark.parametrize(
        "experience, expected",
        [
            (0, "Rookie"),
            (99, "Rookie"),
            (100, "Contender"),
            (249, "Contender"),
            (250, "Gladiator"),
            (499, "Gladiator"),
            (500, "Vanguard"),
            (999, "Vanguard"),
            (1000, "Errorless Legend"),
            (50_000, "Errorless Legend"),
        ],
    )
    def test_resolves_expected_tier(self, experience, expected):
        assert resolve_rank(experience).name == expected

    def test_negative_experience_counts_as_zero(self):
        assert resolve_rank(-40) == resolve_rank(0)

    def test_icons_follow_tier(self):
        assert resolve_rank(0).icon == "/images/ranks/rookie.png"
        assert resolve_rank(1000).icon == "/images/ranks/errorless-legend.png"


class TestProgress:
    def test_zero_at_tier_floor(self):
        status = resolve_rank(100)
        assert status.progress_percent == 0
        assert (status.threshold_low, status.threshold_high) == (100, 250)

    def test_progress_is_floored(self):
        # (105 - 100) / 150 * 100 = 3.33…
        assert resolve_rank(105).progress_percent == 3
        # (90 - 0) / 100 * 100 = 90
        assert resolve_rank(90).progress_percent == 90

    def test_just_below_next_tier(self):
        assert resolve_rank(999).progress_percent == 99

    def test_top_tier_is_full_with_flat_window(self):
        status = resolve_rank(1000)
        assert status.progress_percent == 100
        assert status.threshold_low == status.threshold_high == 1000
        assert resolve_rank(4321).progress_percent == 100


class TestMonotonicity:
    def test_rank_never_decreases_with_experience(self):
        previous = 0
        for experience in range(0, 1200):
            status = resolve_rank(experience)
            assert status.name in RANK_NAMES
            assert status.index >= previous
            previous = status.index

    def test_every_tier_is_reachable(self):
        seen = {resolve_rank(t.threshold).name for t in RANK_TIERS}
        assert seen == set(RANK_NAMES)


class TestHelpers:
    def test_rank_index_ordering(self):
        assert rank_index("Rookie") < rank_index("Vanguard") < rank_index("Errorless Legend")

    def test_unknown_or_missing_rank_is_rookie(self):
        assert rank_index(None) == 0
        assert rank_index("Grandmaster") == 0

    def test_is_rank_name(self):
        assert is_rank_name("Gladiator")
        assert not is_rank_name("gladiator")

    def test_apply_rank_persists_fields(self):
        user = User(email="a@example.com", experience=260)
        status = apply_rank(user)
        assert status.name == "Gladiator"
        assert user.rank == "Gladiator"
        assert user.rank_icon == "/images/ranks/gladiator.png"
        assert user.current_rank_points == 250
        assert user.next_rank_points == 500
        assert user.progress_to_next_rank == 4

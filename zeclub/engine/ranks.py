"""
zeclub.engine.ranks — Rank Resolver
====================================

The single canonical mapping from lifetime experience to a rank tier.
Pure: no DB I/O.  Callers persist the result onto the user with
:func:`apply_rank`.

Tier ladder (ascending)::

    Rookie              0
    Contender         100
    Gladiator         250
    Vanguard          500
    Errorless Legend 1000
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zeclub.database.models import User

__all__ = [
    "RANK_TIERS",
    "RANK_NAMES",
    "RankStatus",
    "RankTier",
    "apply_rank",
    "is_rank_name",
    "rank_index",
    "resolve_rank",
]


@dataclass(frozen=True, slots=True)
class RankTier:
    name: str
    threshold: int
    icon: str


RANK_TIERS: tuple[RankTier, ...] = (
    RankTier("Rookie", 0, "/images/ranks/rookie.png"),
    RankTier("Contender", 100, "/images/ranks/contender.png"),
    RankTier("Gladiator", 250, "/images/ranks/gladiator.png"),
    RankTier("Vanguard", 500, "/images/ranks/vanguard.png"),
    RankTier("Errorless Legend", 1000, "/images/ranks/errorless-legend.png"),
)

RANK_NAMES: tuple[str, ...] = tuple(t.name for t in RANK_TIERS)

_INDEX_BY_NAME: dict[str, int] = {t.name: i for i, t in enumerate(RANK_TIERS)}


@dataclass(frozen=True, slots=True)
class RankStatus:
    """Resolved tier for an experience value."""

    name: str
    icon: str
    threshold_low: int
    threshold_high: int
    progress_percent: int

    @property
    def index(self) -> int:
        return _INDEX_BY_NAME[self.name]


def rank_index(name: str | None) -> int:
    """Position of *name* on the ladder; unknown or missing names count as Rookie."""
    if name is None:
        return 0
    return _INDEX_BY_NAME.get(name, 0)


def is_rank_name(name: str) -> bool:
    return name in _INDEX_BY_NAME


def resolve_rank(experience: int) -> RankStatus:
    """Return the highest tier whose threshold is ≤ *experience*.

    Progress toward the next tier is
    ``floor((experience - low) / (high - low) * 100)`` capped at 100.
    At the top tier progress is fixed at 100 and ``high == low``.
    Negative experience is treated as 0.
    """
    experience = max(0, int(experience))

    index = 0
    for i in range(len(RANK_TIERS) - 1, -1, -1):
        if experience >= RANK_TIERS[i].threshold:
            index = i
            break

    tier = RANK_TIERS[index]
    if index == len(RANK_TIERS) - 1:
        return RankStatus(
            name=tier.name,
            icon=tier.icon,
            threshold_low=tier.threshold,
            threshold_high=tier.threshold,
            progress_percent=100,
        )

    low = tier.threshold
    high = RANK_TIERS[index + 1].threshold
    # Integer floor division matches floor(fraction * 100) for non-negative spans
    progress = min((experience - low) * 100 // (high - low), 100)
    return RankStatus(
        name=tier.name,
        icon=tier.icon,
        threshold_low=low,
        threshold_high=high,
        progress_percent=progress,
    )


def apply_rank(user: User) -> RankStatus:
    """Recompute and store the rank fields of *user* from its experience."""
    status = resolve_rank(user.experience or 0)
    user.rank = status.name
    user.rank_icon = status.icon
    user.progress_to_next_rank = status.progress_percent
    user.next_rank_points = status.threshold_high
    user.current_rank_points = status.threshold_low
    return status

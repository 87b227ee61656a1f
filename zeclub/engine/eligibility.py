"""
zeclub.engine.eligibility — Reward Lock & Discount Rules
=========================================================

Pure evaluation of whether a viewer may claim a reward and what it costs
them.  Used both by the public reward listing and by the redemption
settlement, so what a member is shown is exactly what they are charged.
"""

from __future__ import annotations

from dataclasses import dataclass

from zeclub.engine.ranks import rank_index

# Vanguard and above get a 10% discount on discountable rewards
DISCOUNT_MIN_RANK = "Vanguard"
DISCOUNT_PERCENT = 90

# Exclusive rewards are reserved for this many top members by experience
TOP_EXCLUSIVE_SIZE = 3
# Redeeming an exclusive reward additionally needs the top tier
TOP_EXCLUSIVE_RANK = "Errorless Legend"

LOCK_REQUIRES_RANK = "Requires {rank} rank"
LOCK_TOP3_ONLY = "Exclusive to Top 3 Errorless Legends"
LOCK_SIGN_IN = "Sign in to claim"
LOCK_LEGEND_ONLY = "This reward is exclusive to Errorless Legends only"


@dataclass(frozen=True, slots=True)
class Viewer:
    """The member looking at the catalogue.

    ``members_ahead`` is the number of members with strictly greater
    experience.
    """

    rank: str
    members_ahead: int

    @property
    def is_top3(self) -> bool:
        return self.members_ahead < TOP_EXCLUSIVE_SIZE


@dataclass(frozen=True, slots=True)
class RewardEligibility:
    is_locked: bool
    locked_reason: str | None
    final_cost: int


def discounted_cost(cost: int, viewer_rank: str | None, discountable: bool) -> int:
    """Apply the Vanguard+ discount when it applies, otherwise return *cost*."""
    if (
        discountable
        and viewer_rank is not None
        and rank_index(viewer_rank) >= rank_index(DISCOUNT_MIN_RANK)
    ):
        return cost * DISCOUNT_PERCENT // 100
    return cost


def evaluate_reward(
    *,
    cost: int,
    required_rank: str | None,
    exclusive_to_top3: bool,
    discountable: bool,
    viewer: Viewer | None,
) -> RewardEligibility:
    """Evaluate lock state and final cost of a reward for *viewer*.

    Every rule is checked; the first one that locks supplies the reason.
    Anonymous viewers rank as Rookie and are never top-3.  The discount
    is independent of the lock state.
    """
    viewer_rank = viewer.rank if viewer is not None else None
    reasons: list[str] = []

    if rank_index(viewer_rank) < rank_index(required_rank):
        reasons.append(LOCK_REQUIRES_RANK.format(rank=required_rank))

    if exclusive_to_top3 and (viewer is None or not viewer.is_top3):
        reasons.append(LOCK_TOP3_ONLY)

    if viewer is None:
        reasons.append(LOCK_SIGN_IN)

    return RewardEligibility(
        is_locked=bool(reasons),
        locked_reason=reasons[0] if reasons else None,
        final_cost=discounted_cost(cost, viewer_rank, discountable),
    )

"""
zeclub.services.mission_service — Missions, Submissions & Settlement
=====================================================================

Mission settlement is the only path that awards points.  Each operation
runs in a single transaction:

* **approve**  pending → approved, credit experience + ZE Coins, re-rank,
  ``current_completions += 1``
* **reject**   pending → rejected, no balance change
* **revert**   approved → rejected with audit trail, claw the points back
  (floored at zero), re-rank, ``current_completions -= 1`` (floored at zero)

Status transitions are compare-and-swap UPDATEs on the expected source
status, so two admins acting on the same submission at once cannot both
settle it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zeclub.database.engine import get_session
from zeclub.database.models import (
    ACTIVE_REDEMPTION_STATUSES,
    AdminActionType,
    Mission,
    MissionDifficulty,
    MissionSubmission,
    ProofType,
    RedemptionRequest,
    SubmissionStatus,
    User,
)
from zeclub.services.admin_service import log_admin_action, row_to_dict
from zeclub.services.errors import Conflict, InvalidState, NotFound, ValidationFailed
from zeclub.services.user_service import claw_back_points, credit_points, get_user

logger = logging.getLogger(__name__)

DEFAULT_REVERT_REASON = "Approval reverted by admin"

# Fields an admin may set on a mission; everything else is managed here
MISSION_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "name", "description", "instructions", "category", "difficulty",
    "required_proof_type", "points", "example_image_url", "is_time_limited",
    "start_date", "end_date", "featured", "max_completions",
})

# Editable fields that may be cleared with an explicit null
MISSION_NULLABLE_FIELDS: frozenset[str] = frozenset({
    "example_image_url", "start_date", "end_date", "max_completions",
})


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class VerifyResult:
    submission_id: int
    status: str
    points_awarded: int = 0
    old_rank: str | None = None
    new_rank: str | None = None


@dataclass
class RevertResult:
    submission_id: int
    points_deducted: int
    new_balance: int
    new_experience: int
    old_rank: str
    new_rank: str

    @property
    def rank_changed(self) -> bool:
        return self.old_rank != self.new_rank


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _get_submission(session: Session, submission_id: int) -> MissionSubmission:
    submission = session.get(MissionSubmission, submission_id)
    if submission is None:
        raise NotFound("Submission not found")
    return submission


def _get_mission(session: Session, mission_id: int) -> Mission:
    mission = session.get(Mission, mission_id)
    if mission is None:
        raise NotFound("Mission not found")
    return mission


def _transition(
    session: Session,
    submission: MissionSubmission,
    expected: SubmissionStatus,
    **values: Any,
) -> None:
    """Move *submission* out of *expected* status, or raise InvalidState."""
    result = session.execute(
        update(MissionSubmission)
        .where(
            MissionSubmission.id == submission.id,
            MissionSubmission.status == expected.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidState(
            f"Submission is no longer {expected.value}",
            {"submissionId": submission.id},
        )
    session.refresh(submission)


def _bump_completions(session: Session, mission_id: int, delta: int) -> None:
    """Shift the completion counter by *delta*, never below zero."""
    session.execute(
        update(Mission)
        .where(Mission.id == mission_id)
        .values(
            current_completions=case(
                (Mission.current_completions + delta > 0,
                 Mission.current_completions + delta),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )


def mission_availability(mission: Mission, now: datetime | None = None) -> dict:
    """Computed availability flags for a mission at *now*."""
    now = now or _now()
    start = _aware(mission.start_date)
    end = _aware(mission.end_date)

    is_started = start is None or start <= now
    is_expired = False
    days_remaining = None
    if mission.is_time_limited and end is not None:
        is_expired = end < now
        if not is_expired:
            days_remaining = math.ceil((end - now) / timedelta(days=1))

    is_maxed_out = (
        bool(mission.max_completions)
        and mission.current_completions >= mission.max_completions
    )
    return {
        "isExpired": is_expired,
        "daysRemaining": days_remaining,
        "isMaxedOut": is_maxed_out,
        "isAvailable": (
            mission.active
            and not mission.is_deleted
            and is_started
            and not is_expired
            and not is_maxed_out
        ),
    }


def mission_dict(m: Mission, now: datetime | None = None) -> dict:
    start = _aware(m.start_date)
    end = _aware(m.end_date)
    return {
        "id": m.id,
        "name": m.name,
        "description": m.description,
        "instructions": m.instructions,
        "category": m.category,
        "difficulty": m.difficulty,
        "requiredProofType": m.required_proof_type,
        "points": m.points,
        "exampleImageUrl": m.example_image_url,
        "isTimeLimited": m.is_time_limited,
        "startDate": start.isoformat() if start else None,
        "endDate": end.isoformat() if end else None,
        "active": m.active,
        "featured": m.featured,
        "maxCompletions": m.max_completions,
        "currentCompletions": m.current_completions,
        "isDeleted": m.is_deleted,
        **mission_availability(m, now),
    }


def _submission_dict(s: MissionSubmission) -> dict:
    return {
        "id": s.id,
        "userId": s.user_id,
        "missionId": s.mission_id,
        "proof": s.proof,
        "status": s.status,
        "submittedAt": s.submitted_at.isoformat() if s.submitted_at else None,
        "remarks": s.remarks,
    }


# ---------------------------------------------------------------------------
# Member-facing
# ---------------------------------------------------------------------------
def list_available_missions(engine: Engine) -> list[dict]:
    """Active, started, unexpired, not maxed-out missions; featured first."""
    now = _now()
    with get_session(engine) as session:
        missions = session.scalars(
            select(Mission)
            .where(
                Mission.active.is_(True),
                Mission.is_deleted.is_(False),
                or_(Mission.start_date.is_(None), Mission.start_date <= now),
            )
            .order_by(Mission.featured.desc(), Mission.created_at.desc(), Mission.id.desc())
        ).all()
        dicts = [mission_dict(m, now) for m in missions]
        return [d for d in dicts if not d["isExpired"] and not d["isMaxedOut"]]


def submit_proof(engine: Engine, *, user_id: int, mission_id: int, proof_url: str) -> dict:
    """Record a member's proof for a mission, pending admin verification."""
    if not proof_url or not proof_url.strip():
        raise ValidationFailed("Missing mission ID or file URL")

    with get_session(engine) as session:
        user = get_user(session, user_id)
        mission = _get_mission(session, mission_id)
        if not mission_availability(mission)["isAvailable"]:
            raise Conflict("Mission is not available")

        existing = session.scalar(
            select(MissionSubmission).where(
                MissionSubmission.user_id == user.id,
                MissionSubmission.mission_id == mission.id,
                MissionSubmission.status.in_(
                    (SubmissionStatus.PENDING.value, SubmissionStatus.APPROVED.value)
                ),
            )
        )
        if existing is not None:
            raise Conflict(
                "You have already completed this mission"
                if existing.status == SubmissionStatus.APPROVED
                else "You already have a pending submission for this mission"
            )

        submission = MissionSubmission(
            user_id=user.id,
            mission_id=mission.id,
            proof=proof_url.strip(),
            status=SubmissionStatus.PENDING.value,
        )
        session.add(submission)
        try:
            session.flush()
        except IntegrityError:
            # A concurrent submission won the partial unique index
            raise Conflict(
                "You already have a pending submission for this mission"
            ) from None

        session.refresh(submission)
        logger.info("User %d submitted proof for mission %d", user.id, mission.id)
        return _submission_dict(submission)


# ---------------------------------------------------------------------------
# Admin: review queue
# ---------------------------------------------------------------------------
def list_pending_submissions(engine: Engine) -> list[dict]:
    with get_session(engine) as session:
        rows = session.execute(
            select(MissionSubmission, User, Mission)
            .join(User, MissionSubmission.user_id == User.id)
            .join(Mission, MissionSubmission.mission_id == Mission.id)
            .where(MissionSubmission.status == SubmissionStatus.PENDING.value)
            .order_by(MissionSubmission.submitted_at, MissionSubmission.id)
        ).all()
        return [
            {
                **_submission_dict(s),
                "user": {"id": u.id, "zeTag": u.ze_tag, "email": u.email},
                "mission": {"id": m.id, "name": m.name, "points": m.points},
            }
            for s, u, m in rows
        ]


# ---------------------------------------------------------------------------
# Admin: settlement
# ---------------------------------------------------------------------------
def verify_submission(
    engine: Engine,
    *,
    submission_id: int,
    status: str,
    admin_id: int,
) -> VerifyResult:
    """Approve or reject a pending submission."""
    if status == SubmissionStatus.APPROVED:
        return approve_submission(engine, submission_id=submission_id, admin_id=admin_id)
    if status == SubmissionStatus.REJECTED:
        return reject_submission(engine, submission_id=submission_id, admin_id=admin_id)
    raise ValidationFailed("Invalid status", {"allowed": ["approved", "rejected"]})


def approve_submission(engine: Engine, *, submission_id: int, admin_id: int) -> VerifyResult:
    with get_session(engine) as session:
        submission = _get_submission(session, submission_id)
        if submission.status != SubmissionStatus.PENDING:
            raise InvalidState(
                f"Only pending submissions can be approved (currently {submission.status})"
            )
        user = get_user(session, submission.user_id)
        mission = _get_mission(session, submission.mission_id)

        _transition(
            session,
            submission,
            SubmissionStatus.PENDING,
            status=SubmissionStatus.APPROVED.value,
            reviewed_by=admin_id,
            reviewed_at=_now(),
        )
        old_rank = user.rank
        rank = credit_points(session, user, mission.points)
        _bump_completions(session, mission.id, +1)

        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.APPROVE,
            target_table="mission_submissions",
            target_id=submission.id,
            before={"status": SubmissionStatus.PENDING.value},
            after={
                "status": SubmissionStatus.APPROVED.value,
                "points": mission.points,
                "experience": user.experience,
                "ze_coins": user.ze_coins,
                "rank": rank.name,
            },
        )
        logger.info(
            "Submission %d approved by %d: +%d to user %d (%s → %s)",
            submission.id, admin_id, mission.points, user.id, old_rank, rank.name,
        )
        return VerifyResult(
            submission_id=submission.id,
            status=SubmissionStatus.APPROVED.value,
            points_awarded=mission.points,
            old_rank=old_rank,
            new_rank=rank.name,
        )


def reject_submission(engine: Engine, *, submission_id: int, admin_id: int) -> VerifyResult:
    with get_session(engine) as session:
        submission = _get_submission(session, submission_id)
        if submission.status != SubmissionStatus.PENDING:
            raise InvalidState(
                f"Only pending submissions can be rejected (currently {submission.status})"
            )
        _transition(
            session,
            submission,
            SubmissionStatus.PENDING,
            status=SubmissionStatus.REJECTED.value,
            reviewed_by=admin_id,
            reviewed_at=_now(),
        )
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.REJECT,
            target_table="mission_submissions",
            target_id=submission.id,
            before={"status": SubmissionStatus.PENDING.value},
            after={"status": SubmissionStatus.REJECTED.value},
        )
        logger.info("Submission %d rejected by %d", submission.id, admin_id)
        return VerifyResult(submission_id=submission.id, status=SubmissionStatus.REJECTED.value)


def revert_submission(
    engine: Engine,
    *,
    submission_id: int,
    admin_id: int,
    reason: str | None = None,
) -> RevertResult:
    """Undo an approval and claw back the awarded points.

    Blocked with :class:`Conflict` when the member has already spent
    coins they would no longer have (balance would go negative while
    they hold pending, processing or completed redemptions).
    """
    reason = (reason or "").strip() or DEFAULT_REVERT_REASON

    with get_session(engine) as session:
        submission = _get_submission(session, submission_id)
        if submission.status != SubmissionStatus.APPROVED:
            raise InvalidState("Only approved submissions can be reverted")

        user = get_user(session, submission.user_id, for_update=True)
        mission = _get_mission(session, submission.mission_id)
        points = mission.points

        resulting_balance = user.ze_coins - points
        active_redemptions = session.scalar(
            select(func.count())
            .select_from(RedemptionRequest)
            .where(
                RedemptionRequest.user_id == user.id,
                RedemptionRequest.status.in_(ACTIVE_REDEMPTION_STATUSES),
            )
        ) or 0
        if resulting_balance < 0 and active_redemptions > 0:
            logger.warning(
                "Revert of submission %d blocked: user %d balance %d < %d with %d active redemptions",
                submission.id, user.id, user.ze_coins, points, active_redemptions,
            )
            raise Conflict(
                "Cannot revert: User has active redemption requests and insufficient balance",
                {
                    "currentZeCoins": user.ze_coins,
                    "pointsToDeduct": points,
                    "resultingBalance": resulting_balance,
                    "activeRedemptions": active_redemptions,
                },
            )

        _transition(
            session,
            submission,
            SubmissionStatus.APPROVED,
            status=SubmissionStatus.REJECTED.value,
            reverted_by=admin_id,
            reverted_at=_now(),
            revert_reason=reason,
            remarks=reason,
        )
        old_rank = user.rank
        rank = claw_back_points(session, user, points)
        _bump_completions(session, mission.id, -1)

        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.REVERT,
            target_table="mission_submissions",
            target_id=submission.id,
            before={"status": SubmissionStatus.APPROVED.value, "rank": old_rank},
            after={
                "status": SubmissionStatus.REJECTED.value,
                "points_deducted": points,
                "experience": user.experience,
                "ze_coins": user.ze_coins,
                "rank": rank.name,
            },
            reason=reason,
        )
        logger.info(
            "Submission %d reverted by %d: -%d from user %d (%s → %s)",
            submission.id, admin_id, points, user.id, old_rank, rank.name,
        )
        return RevertResult(
            submission_id=submission.id,
            points_deducted=points,
            new_balance=user.ze_coins,
            new_experience=user.experience,
            old_rank=old_rank,
            new_rank=rank.name,
        )


# ---------------------------------------------------------------------------
# Admin: mission catalogue
# ---------------------------------------------------------------------------
def _validate_mission_fields(fields: dict[str, Any]) -> None:
    cleared = sorted(
        k for k, v in fields.items() if v is None and k not in MISSION_NULLABLE_FIELDS
    )
    if cleared:
        raise ValidationFailed("Fields cannot be null", {"fields": cleared})
    points = fields.get("points")
    if points is not None and points < 0:
        raise ValidationFailed("Points must be a positive number")
    difficulty = fields.get("difficulty")
    if difficulty is not None and difficulty not in {d.value for d in MissionDifficulty}:
        raise ValidationFailed("Difficulty must be Easy, Medium, or Hard")
    proof_type = fields.get("required_proof_type")
    if proof_type is not None and proof_type not in {p.value for p in ProofType}:
        raise ValidationFailed("Proof type must be image, video, or both")
    max_completions = fields.get("max_completions")
    if max_completions is not None and max_completions < 1:
        raise ValidationFailed("Max completions must be at least 1")


def _validate_window(mission: Mission) -> None:
    start, end = _aware(mission.start_date), _aware(mission.end_date)
    if mission.is_time_limited and start is not None and end is not None and end <= start:
        raise ValidationFailed("End date must be after start date")


def create_mission(
    engine: Engine,
    *,
    actor_id: int,
    days_available: int | None = None,
    **fields: Any,
) -> dict:
    """Create a mission.  ``days_available`` derives ``end_date`` when unset."""
    fields = {k: v for k, v in fields.items() if k in MISSION_EDITABLE_FIELDS}
    for required in ("name", "description", "points"):
        if fields.get(required) in (None, ""):
            raise ValidationFailed(
                "Missing required fields: name, description, and points are required"
            )
    _validate_mission_fields(fields)

    if fields.get("is_time_limited") and days_available and not fields.get("end_date"):
        start = _aware(fields.get("start_date")) or _now()
        fields["end_date"] = start + timedelta(days=days_available)

    mission = Mission(**fields, created_by=actor_id, current_completions=0)
    _validate_window(mission)

    with get_session(engine) as session:
        session.add(mission)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table="missions",
            target_id=mission.id,
            before=None,
            after=row_to_dict(mission),
        )
        session.refresh(mission)
        logger.info("Mission %d (%s) created by %d", mission.id, mission.name, actor_id)
        return mission_dict(mission)


def update_mission(engine: Engine, mission_id: int, *, actor_id: int, **fields: Any) -> dict:
    fields = {k: v for k, v in fields.items() if k in MISSION_EDITABLE_FIELDS}
    _validate_mission_fields(fields)

    with get_session(engine) as session:
        mission = _get_mission(session, mission_id)
        before = row_to_dict(mission)
        for key, value in fields.items():
            setattr(mission, key, value)
        _validate_window(mission)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="missions",
            target_id=mission.id,
            before=before,
            after=row_to_dict(mission),
        )
        session.refresh(mission)
        return mission_dict(mission)


def set_mission_active(engine: Engine, mission_id: int, *, active: bool, actor_id: int) -> dict:
    """Activate (clearing deactivation audit) or deactivate a mission."""
    with get_session(engine) as session:
        mission = _get_mission(session, mission_id)
        before = row_to_dict(mission)
        mission.active = active
        if active:
            mission.deactivated_at = None
            mission.deactivated_by = None
        else:
            mission.deactivated_at = _now()
            mission.deactivated_by = actor_id
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="missions",
            target_id=mission.id,
            before=before,
            after=row_to_dict(mission),
        )
        session.refresh(mission)
        return mission_dict(mission)


def delete_mission(engine: Engine, mission_id: int, *, actor_id: int) -> dict:
    """Soft delete: the mission disappears from the catalogue but its
    submissions (and any awarded points) are kept."""
    with get_session(engine) as session:
        mission = _get_mission(session, mission_id)
        before = row_to_dict(mission)
        now = _now()
        mission.active = False
        mission.is_deleted = True
        mission.deleted_at = now
        mission.deleted_by = actor_id
        mission.deactivated_at = now
        mission.deactivated_by = actor_id
        session.flush()

        pending = session.scalar(
            select(func.count())
            .select_from(MissionSubmission)
            .where(
                MissionSubmission.mission_id == mission.id,
                MissionSubmission.status == SubmissionStatus.PENDING.value,
            )
        ) or 0
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_table="missions",
            target_id=mission.id,
            before=before,
            after=row_to_dict(mission),
        )
        return {
            "mission": mission_dict(mission),
            "pendingSubmissions": pending,
            "message": (
                f"Mission deactivated. {pending} pending submissions still need review."
                if pending
                else "Mission deactivated successfully"
            ),
        }

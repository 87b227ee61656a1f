"""
zeclub.services.settings_service — Site Settings
=================================================

Typed read/write access to the ``settings`` table.  The hero media
record is seeded at startup; reads never create it.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from zeclub.database.engine import get_session
from zeclub.database.models import AdminActionType, Setting
from zeclub.database.seed import DEFAULT_HERO_POSTER_URL, DEFAULT_HERO_VIDEO_URL
from zeclub.services.admin_service import log_admin_action
from zeclub.services.errors import ValidationFailed

logger = logging.getLogger(__name__)

_HERO_KEYS = {
    "heroVideoUrl": "hero.video_url",
    "heroPosterUrl": "hero.poster_url",
    "previousHeroVideoUrl": "hero.previous_video_url",
    "previousHeroPosterUrl": "hero.previous_poster_url",
}


def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session."""
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def _set_value(session: Session, key: str, value, updated_by: str | None) -> None:
    row = session.get(Setting, key)
    if row is None:
        row = Setting(key=key, value_json=json.dumps(value), category="hero")
        session.add(row)
    else:
        row.value_json = json.dumps(value)
    row.updated_by = updated_by


def _hero_dict(session: Session) -> dict:
    hero = {name: get_setting_value(session, key, "") or "" for name, key in _HERO_KEYS.items()}
    current = session.get(Setting, _HERO_KEYS["heroVideoUrl"])
    hero.update({
        "defaultHeroVideoUrl": DEFAULT_HERO_VIDEO_URL,
        "defaultHeroPosterUrl": DEFAULT_HERO_POSTER_URL,
        "updatedBy": current.updated_by if current else None,
        "updatedAt": current.updated_at.isoformat() if current and current.updated_at else None,
    })
    return hero


def get_hero_settings(engine: Engine) -> dict:
    with get_session(engine) as session:
        return _hero_dict(session)


def update_hero_settings(
    engine: Engine,
    *,
    actor_id: int,
    actor_label: str | None = None,
    hero_video_url: str | None = None,
    hero_poster_url: str | None = None,
) -> dict:
    """Replace hero media URLs, keeping the previous values one step back."""
    if hero_video_url is None and hero_poster_url is None:
        raise ValidationFailed("At least one URL must be provided")

    with get_session(engine) as session:
        before = _hero_dict(session)
        for new_value, key, previous_key in (
            (hero_video_url, "hero.video_url", "hero.previous_video_url"),
            (hero_poster_url, "hero.poster_url", "hero.previous_poster_url"),
        ):
            if new_value is None:
                continue
            current = get_setting_value(session, key, "")
            if current:
                _set_value(session, previous_key, current, actor_label)
            _set_value(session, key, new_value, actor_label)

        session.flush()
        after = _hero_dict(session)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="settings",
            target_id="hero",
            before=before,
            after=after,
        )
        logger.info("Hero media updated by %s", actor_label or actor_id)
        return after

"""
zeclub.database.seed — Default Settings Seeder
===============================================

Site settings seeded at startup so that reads never have to create them.

Idempotent — only inserts keys that don't already exist.  Values set by
admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from zeclub.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_HERO_VIDEO_URL = "/images/background.mp4"
DEFAULT_HERO_POSTER_URL = "/images/hero-background.jpg"

DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "hero.video_url": ("", "hero", "Custom hero video URL (blank uses the default)"),
    "hero.poster_url": ("", "hero", "Custom hero poster URL (blank uses the default)"),
    "hero.previous_video_url": ("", "hero", "Hero video URL before the last change"),
    "hero.previous_poster_url": ("", "hero", "Hero poster URL before the last change"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)

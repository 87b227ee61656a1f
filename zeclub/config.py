"""
zeclub.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for **infrastructure-only** settings (community
identity, API port, the role claim that grants admin access, leaderboard
size).  The rank ladder and reward rules are fixed in
:mod:`zeclub.engine` and are not configurable.

Usage::

    from zeclub.config import load_config

    cfg = load_config()          # reads $ZECLUB_CONFIG or ./config.yaml
    print(cfg.community_name)    # "ZE Club"
    print(cfg.admin_role)        # "admin"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ZeClubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # API
    dashboard_port: int

    # Access
    admin_role: str = "admin"  # Role claim required for admin endpoints

    # Display
    leaderboard_size: int = 100


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> ZeClubConfig:
    """Read *path* and return a :class:`ZeClubConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  When omitted,
        ``$ZECLUB_CONFIG`` is used, then ``config.yaml`` in the current
        working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    if path is None:
        path = os.getenv("ZECLUB_CONFIG", DEFAULT_CONFIG_PATH)
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ZeClubConfig(
        community_name=raw["community_name"],
        dashboard_port=int(raw["dashboard_port"]),
        admin_role=str(raw.get("admin_role") or "admin"),
        leaderboard_size=int(raw.get("leaderboard_size", 100)),
    )

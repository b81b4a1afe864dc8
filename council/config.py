"""
council.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for deployment settings and the governance windows
that operators are allowed to tune (rotation period, reminder delay).
Secrets (database URL, JWT secret, push service key) stay in the
environment and are loaded from ``.env``.

Usage::

    from council.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.rotation_period_days)  # 180
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CouncilConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    service_name: str

    # Committee rotation
    rotation_period_days: int  # How long a committee serves

    # Expulsion reviews
    reminder_after_hours: int  # Nag silent voters once a review is this old

    # Access
    admin_role: str = "admin"

    # Optional
    push_notification_url: str | None = None  # Best-effort push endpoint


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CouncilConfig:
    """Read *path* and return a :class:`CouncilConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return CouncilConfig(
        service_name=raw["service_name"],
        rotation_period_days=int(raw["rotation_period_days"]),
        reminder_after_hours=int(raw["reminder_after_hours"]),
        admin_role=raw.get("admin_role") or "admin",
        push_notification_url=raw.get("push_notification_url") or None,
    )

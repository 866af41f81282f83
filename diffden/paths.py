"""
Data directory layout and small path helpers.

Layout under the data home (default ``~/.diffden``):

    config.json         project registry
    repos/<slug>/       one history repository per project
    repos/<slug>.owner  absolute directory whose history lives in repos/<slug>
"""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from pathlib import Path

HOME_ENV_VAR = "DIFFDEN_HOME"
CONFIG_FILENAME = "config.json"
REPOS_DIRNAME = "repos"
OWNER_SUFFIX = ".owner"

_SLUG_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


def default_home() -> Path:
    """Return the data home, honouring $DIFFDEN_HOME."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".diffden"


def config_path(home: Path) -> Path:
    return home / CONFIG_FILENAME


def repos_dir(home: Path) -> Path:
    return home / REPOS_DIRNAME


def owner_marker_path(home: Path, slug: str) -> Path:
    """File recording which project directory owns `repos/<slug>`."""
    return repos_dir(home) / f"{slug}{OWNER_SUFFIX}"


def project_dir_from_file(file_path: str | Path) -> Path:
    """Directory that owns a watched file (its absolute parent)."""
    return Path(file_path).expanduser().resolve().parent


def project_slug(dir_path: str | Path) -> str:
    """
    Derive a filesystem-safe slug from a project directory.

    The slug is the directory's basename with anything outside
    ``[A-Za-z0-9_-]`` replaced by an underscore.
    """
    name = Path(dir_path).expanduser().resolve().name
    return _SLUG_UNSAFE.sub("_", name)


def relative_time(when: datetime, now: datetime | None = None) -> str:
    """Render a timestamp as a short human string ("3m ago", "yesterday")."""
    if now is None:
        now = datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    seconds = int((now - when).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 30:
        return f"{days}d ago"
    return when.astimezone().strftime("%Y-%m-%d")

"""Open a project's history repository in an external editor."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "code"


def resolve_editor(configured: str | None = None) -> str:
    """Configured editor, then $VISUAL, then $EDITOR, then VS Code."""
    return configured or os.environ.get("VISUAL") or os.environ.get("EDITOR") or DEFAULT_EDITOR


def open_in_editor(repo_path: Path, editor: str | None = None) -> bool:
    """Launch the editor detached on the repository. Returns False if it cannot start."""
    cmd = resolve_editor(editor)
    try:
        subprocess.Popen(
            [cmd, str(repo_path)],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.warning(f"Could not launch editor {cmd!r}: {e}")
        return False
    return True


def link_instructions(repo_path: Path) -> str:
    """How to browse a history repository from VS Code's git sidebar."""
    return "\n".join(
        [
            "To link the tracking repo in VS Code's git sidebar:",
            "",
            "Option 1: Add to workspace settings (.vscode/settings.json):",
            f'  "git.repositories": ["{repo_path}"]',
            "",
            "Option 2: Add as multi-root workspace folder:",
            f"  File > Add Folder to Workspace... > {repo_path}",
            "",
            "Option 3: Open tracking repo directly:",
            f"  code {repo_path}",
            "",
            "Then use GitLens or the built-in Git sidebar to browse history.",
        ]
    )

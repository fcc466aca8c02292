"""portal_shared.commit_progress — Progress hints embedded in commit messages.

Recognized first-line formats, tried in order:

    feat: Complete design system - Phase: Design - Progress: 40%
    [Phase Design] Brand guidelines done - Progress: 50%
    Phase Design: Color palette finalized - 60%
    Homepage hero finished - 65%
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_PATTERNS = (
    (
        "standard",
        re.compile(
            r"^(feat|fix|docs|style|refactor|test|chore):\s*(.+?)"
            r"(?:\s*-\s*Phase:\s*(\w+))?(?:\s*-\s*Progress:\s*(\d+)%)?$",
            re.IGNORECASE,
        ),
    ),
    ("bracket", re.compile(r"^\[Phase\s*(\w+)\]\s*(.+?)(?:\s*-\s*Progress:\s*(\d+)%)?$", re.IGNORECASE)),
    ("simple", re.compile(r"^Phase\s*(\w+):\s*(.+?)(?:\s*-\s*(\d+)%)?$", re.IGNORECASE)),
    ("progress", re.compile(r"^(.+?)(?:\s*-\s*(\d+)%)?$", re.IGNORECASE)),
)


@dataclass
class CommitProgress:
    kind: str
    description: str
    phase: Optional[str] = None
    progress: Optional[int] = None


def parse_commit_message(message: str) -> Optional[CommitProgress]:
    """Parse the first line of a commit message.

    Returns None when the line names neither a phase nor a percentage.
    """
    first_line = (message or "").strip().splitlines()[0].strip() if (message or "").strip() else ""
    if not first_line:
        return None

    for name, pattern in _PATTERNS:
        match = pattern.match(first_line)
        if not match:
            continue
        if name == "standard":
            kind, description, phase, progress = match.group(1).lower(), match.group(2), match.group(3), match.group(4)
        elif name in ("bracket", "simple"):
            kind, phase, description, progress = "update", match.group(1), match.group(2), match.group(3)
        else:
            kind, phase, description, progress = "update", None, match.group(1), match.group(2)
        break
    else:
        return None

    if phase is None and progress is None:
        return None
    return CommitProgress(
        kind=kind,
        description=(description or "").strip(),
        phase=phase,
        progress=int(progress) if progress is not None else None,
    )

"""
Backlog identifier generation.

Formats:
  - New items:      BL-{yy}{seq}        (e.g. BL-240007, seq zero-padded to 4)
  - Split children: BL-{yy}{seq}-{a..z} (e.g. BL-240007-a, BL-240007-b)
  - Merge results:  {first source}-m    (e.g. BL-240001-m)

The next sequence number is derived from the live collection on every call;
there is no counter table. Callers must regenerate before each creation.
"""

from __future__ import annotations

import re
import uuid
from collections import Counter
from collections.abc import Iterable
from datetime import date

from sprintlog.backlog.schema import BacklogItem

BACKLOG_ID_PREFIX = "BL"
SEQUENCE_WIDTH = 4

# BL-YYNNNN with optional -suffix; sequences past 9999 keep growing
BACKLOG_ID_PATTERN = re.compile(rf"^{BACKLOG_ID_PREFIX}-(\d{{2}})(\d{{{SEQUENCE_WIDTH},}})(?:-.+)?$")

MERGE_SUFFIX = "m"


def year_prefix(today: date | None = None) -> str:
    """`BL-24` for any day in 2024."""
    today = today or date.today()
    return f"{BACKLOG_ID_PREFIX}-{today.year % 100:02d}"


def parse_sequence(backlog_id: str | None) -> tuple[str, int] | None:
    """Split a backlog id into (two-digit year, sequence), ignoring suffixes."""
    if not backlog_id:
        return None
    match = BACKLOG_ID_PATTERN.match(backlog_id)
    if not match:
        return None
    return match.group(1), int(match.group(2))


def next_backlog_id(items: Iterable[BacklogItem], today: date | None = None) -> str:
    """Next sequential backlog id for the current year.

    Scans every item, active and historical, so retired ids are never handed
    out again.
    """
    prefix = year_prefix(today)
    year = prefix[-2:]
    max_seq = 0
    for item in items:
        parsed = parse_sequence(item.backlog_id)
        if parsed and parsed[0] == year:
            max_seq = max(max_seq, parsed[1])
    return f"{prefix}{max_seq + 1:0{SEQUENCE_WIDTH}d}"


def split_suffix(index: int) -> str:
    """0 -> a, 25 -> z, 26 -> aa, 27 -> ab."""
    if index < 0:
        raise ValueError(f"split index must be >= 0, got {index}")
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(97 + rem) + letters
    return letters


def split_child_backlog_id(parent_backlog_id: str, index: int) -> str:
    return f"{parent_backlog_id}-{split_suffix(index)}"


def merge_backlog_id(first_source_backlog_id: str) -> str:
    return f"{first_source_backlog_id}-{MERGE_SUFFIX}"


def new_item_id(prefix: str = "item") -> str:
    """Opaque id for a new item or sprint task."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def new_merge_event_id() -> str:
    return f"merge_evt_{uuid.uuid4().hex[:12]}"


def find_collisions(candidate_ids: Iterable[str], items: Iterable[BacklogItem]) -> list[str]:
    """Candidate backlog ids that are already taken or repeated.

    Retired ids count as taken: historical items keep their id permanently.
    """
    candidates = list(candidate_ids)
    taken = {item.backlog_id for item in items}
    repeated = {cid for cid, count in Counter(candidates).items() if count > 1}
    collisions = []
    for cid in candidates:
        if (cid in taken or cid in repeated) and cid not in collisions:
            collisions.append(cid)
    return collisions

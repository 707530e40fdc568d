"""Translation between board columns and durable project statuses.

This is the only place legacy status spellings are reconciled. Unknown or
missing durable values land in the earliest column so every project renders
somewhere.
"""

from __future__ import annotations

from studiodesk.models import BoardColumn, ProjectStatus

DEFAULT_COLUMN = BoardColumn.PROSPECT_IN_PROGRESS

COLUMN_TO_STATUS: dict[BoardColumn, ProjectStatus] = {
    BoardColumn.PROSPECT_IN_PROGRESS: ProjectStatus.PROSPECT,
    BoardColumn.YET_TO_START: ProjectStatus.PRE_PRODUCTION,
    BoardColumn.STARTED: ProjectStatus.PRODUCTION,
    BoardColumn.COMPLETED: ProjectStatus.POST_PRODUCTION,
    BoardColumn.DUES_CLEARED_DELIVERED: ProjectStatus.DELIVERED,
}

STATUS_TO_COLUMN: dict[ProjectStatus, BoardColumn] = {
    status: column for column, status in COLUMN_TO_STATUS.items()
}

# Spellings written by older releases and by the board itself
LEGACY_ALIASES: dict[str, ProjectStatus] = {
    "prospect_in_progress": ProjectStatus.PROSPECT,
    "lead": ProjectStatus.PROSPECT,
    "pre-production": ProjectStatus.PRE_PRODUCTION,
    "preproduction": ProjectStatus.PRE_PRODUCTION,
    "yet_to_start": ProjectStatus.PRE_PRODUCTION,
    "not_started": ProjectStatus.PRE_PRODUCTION,
    "started": ProjectStatus.PRODUCTION,
    "in_progress": ProjectStatus.PRODUCTION,
    "active": ProjectStatus.PRODUCTION,
    "post-production": ProjectStatus.POST_PRODUCTION,
    "completed": ProjectStatus.POST_PRODUCTION,
    "dues_cleared_delivered": ProjectStatus.DELIVERED,
    "dues_cleared": ProjectStatus.DELIVERED,
    "closed": ProjectStatus.DELIVERED,
}


def to_durable(column: BoardColumn | str) -> ProjectStatus:
    """Board column -> durable status. Raises ValueError for unknown columns."""
    return COLUMN_TO_STATUS[BoardColumn(column)]


def parse_status(value: object) -> ProjectStatus | None:
    """Durable or legacy spelling -> status, ``None`` when unrecognized."""
    if isinstance(value, ProjectStatus):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    try:
        return ProjectStatus(key)
    except ValueError:
        return LEGACY_ALIASES.get(key)


def to_column(value: object) -> BoardColumn:
    """Durable value (possibly legacy, null or garbage) -> board column."""
    status = parse_status(value)
    if status is None:
        return DEFAULT_COLUMN
    return STATUS_TO_COLUMN[status]


def normalize_status(value: object) -> ProjectStatus:
    """Durable value -> canonical status, defaulting like ``to_column``."""
    return COLUMN_TO_STATUS[to_column(value)]

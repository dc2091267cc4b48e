"""
Derived, read-only views of a BoardState.

Nothing here is cached: every call recomputes from the snapshot it is given.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .ordering import sort_cards
from .schema import BoardState, Card, Column, DEFAULT_COLORS

TOP_LIMIT = 10


@dataclass(frozen=True)
class RankedCard:
    """A card tagged with where it lives, so a renderer can locate it."""
    card: Card
    column_id: int
    column_title: str
    project_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.card.to_dict()
        data.update({
            "columnId": self.column_id,
            "columnTitle": self.column_title,
            "projectId": self.project_id,
        })
        return data


def filtered_columns(columns: Sequence[Column], project_id: Optional[int] = None) -> List[Column]:
    """Columns assigned to project_id, or every column when no filter is set."""
    if project_id is None:
        return list(columns)
    return [c for c in columns if c.project_id == project_id]


def visible_cards(column: Column, show_archived: bool = False,
                  palette: Sequence[str] = DEFAULT_COLORS) -> List[Card]:
    """Display order for one column; archived cards only when show_archived is on."""
    return [c for c in sort_cards(column.cards, palette) if show_archived or not c.archived]


def top_cards(columns: Sequence[Column], project_id: Optional[int] = None,
              palette: Sequence[str] = DEFAULT_COLORS, limit: int = TOP_LIMIT) -> List[RankedCard]:
    """The highest-priority live cards across columns.

    Archived cards never appear here, whatever the board's show-archived flag.
    """
    tagged = [
        RankedCard(card=card, column_id=column.id, column_title=column.title, project_id=column.project_id)
        for column in filtered_columns(columns, project_id)
        for card in column.cards
    ]
    ranked = sort_cards(tagged, palette, get_card=lambda r: r.card)
    return [r for r in ranked if not r.card.archived][:limit]


def board_top_cards(state: BoardState, palette: Sequence[str] = DEFAULT_COLORS,
                    limit: int = TOP_LIMIT) -> List[RankedCard]:
    return top_cards(state.columns, state.selected_project_id, palette, limit)


def project_name(state: BoardState, project_id: Optional[int]) -> str:
    project = state.find_project(project_id) if project_id is not None else None
    return project.name if project else "No Project"


def time_remaining(due: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Human countdown to a due date, e.g. "2d 3h remaining" or "Expired"."""
    if due is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc) if due.tzinfo else datetime.now()
    elif (now.tzinfo is None) != (due.tzinfo is None):
        # compare on a common scale; naive values are taken as UTC
        now = _as_utc(now)
        due = _as_utc(due)

    seconds = (due - now).total_seconds()
    if seconds < 0:
        return "Expired"
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    if days > 0:
        return f"{days}d {hours}h remaining"
    if hours > 0:
        return f"{hours}h remaining"
    return "Less than 1h remaining"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""
Board commands.

Each command takes the current BoardState plus identifying keys and a new
value, and returns a new BoardState. Only the targeted entity and the
collections enclosing it are rebuilt; everything else is shared.

Unknown ids are a no-op: the returned board equals the one passed in.

Destructive commands (delete_column, delete_card) do not ask for
confirmation. The calling layer must collect it first (see server.py).
"""
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from .schema import (
    BoardState,
    Card,
    Column,
    Project,
    DEFAULT_COLORS,
    NEW_CARD_TITLE,
    NEW_COLUMN_TITLE,
    clamp_progress,
    parse_due_date,
    require_text,
)

T = TypeVar("T")


def _allocate_id(state: BoardState) -> Tuple[int, BoardState]:
    return state.next_id, replace(state, next_id=state.next_id + 1)


def _update_column(state: BoardState, column_id: int, fn: Callable[[Column], Column]) -> BoardState:
    if state.find_column(column_id) is None:
        return state
    columns = tuple(fn(c) if c.id == column_id else c for c in state.columns)
    return replace(state, columns=columns)


def _update_card(state: BoardState, column_id: int, card_id: int, fn: Callable[[Card], Card]) -> BoardState:
    column = state.find_column(column_id)
    if column is None or not any(c.id == card_id for c in column.cards):
        return state

    def rebuild(col: Column) -> Column:
        return replace(col, cards=tuple(fn(c) if c.id == card_id else c for c in col.cards))

    return _update_column(state, column_id, rebuild)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Projects (append-only, renamable)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def add_project(state: BoardState, name: str) -> BoardState:
    """Append a project. Blank names are ignored."""
    if not isinstance(name, str) or not name.strip():
        return state
    project_id, state = _allocate_id(state)
    return replace(state, projects=state.projects + (Project(id=project_id, name=name),))


def rename_project(state: BoardState, project_id: int, name: str) -> BoardState:
    if not isinstance(name, str) or not name.strip() or state.find_project(project_id) is None:
        return state
    projects = tuple(replace(p, name=name) if p.id == project_id else p for p in state.projects)
    return replace(state, projects=projects)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Columns
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def add_column(state: BoardState, title: str = NEW_COLUMN_TITLE, project_id: Optional[int] = None) -> BoardState:
    require_text(title, "title")
    column_id, state = _allocate_id(state)
    column = Column(id=column_id, title=title, project_id=project_id)
    return replace(state, columns=state.columns + (column,))


def update_column_title(state: BoardState, column_id: int, title: str) -> BoardState:
    require_text(title, "title")
    return _update_column(state, column_id, lambda c: replace(c, title=title))


def set_column_project(state: BoardState, column_id: int, project_id: Optional[int]) -> BoardState:
    """Assign a column to a project; None makes it unassigned."""
    return _update_column(state, column_id, lambda c: replace(c, project_id=project_id))


def delete_column(state: BoardState, column_id: int) -> BoardState:
    """Remove a column and every card in it, as one replacement snapshot."""
    column = state.find_column(column_id)
    if column is None:
        return state
    gone = {card.id for card in column.cards}
    expanded = {k: v for k, v in state.expanded_cards.items() if k not in gone}
    columns = tuple(c for c in state.columns if c.id != column_id)
    return replace(state, columns=columns, expanded_cards=expanded)


def reorder(items: Sequence[T], start_index: int, end_index: int) -> List[T]:
    """Move items[start_index] to end_index, shifting the items in between.

    Both indices must be valid positions; anything else raises IndexError.
    """
    size = len(items)
    if not (0 <= start_index < size and 0 <= end_index < size):
        raise IndexError(f"reorder indices out of range: {start_index} -> {end_index} (size {size})")
    result = list(items)
    moved = result.pop(start_index)
    result.insert(end_index, moved)
    return result


def move_column(state: BoardState, source_index: int, destination_index: Optional[int]) -> BoardState:
    """Apply a completed column drag. A None destination means the drag was cancelled."""
    if destination_index is None:
        return state
    return replace(state, columns=tuple(reorder(state.columns, source_index, destination_index)))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cards
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def add_card(state: BoardState, column_id: int, title: str = NEW_CARD_TITLE,
             palette: Sequence[str] = DEFAULT_COLORS) -> BoardState:
    require_text(title, "title")
    if state.find_column(column_id) is None:
        return state
    card_id, state = _allocate_id(state)
    card = Card(id=card_id, title=title, color=palette[0] if palette else DEFAULT_COLORS[0])
    return _update_column(state, column_id, lambda c: replace(c, cards=c.cards + (card,)))


def update_card_title(state: BoardState, column_id: int, card_id: int, title: str) -> BoardState:
    require_text(title, "title")
    return _update_card(state, column_id, card_id, lambda c: replace(c, title=title))


def update_card_color(state: BoardState, column_id: int, card_id: int, color: str) -> BoardState:
    # palette membership is not enforced; unknown colors just rank last
    require_text(color, "color")
    return _update_card(state, column_id, card_id, lambda c: replace(c, color=color))


def update_card_due_date(state: BoardState, column_id: int, card_id: int, due_date: Any) -> BoardState:
    """Set or clear (None / "") a due date. Accepts datetimes or ISO-8601 text."""
    due: Optional[datetime] = parse_due_date(due_date)
    return _update_card(state, column_id, card_id, lambda c: replace(c, due_date=due))


def update_card_notes(state: BoardState, column_id: int, card_id: int, notes: str) -> BoardState:
    require_text(notes, "notes")
    return _update_card(state, column_id, card_id, lambda c: replace(c, notes=notes))


def update_card_progress(state: BoardState, column_id: int, card_id: int, progress: Any) -> BoardState:
    """150 -> 100, -5 -> 0, "42" -> 42."""
    value = clamp_progress(progress)
    return _update_card(state, column_id, card_id, lambda c: replace(c, progress=value))


def archive_card(state: BoardState, column_id: int, card_id: int) -> BoardState:
    return _update_card(state, column_id, card_id, lambda c: replace(c, archived=True))


def toggle_card_archive(state: BoardState, column_id: int, card_id: int) -> BoardState:
    return _update_card(state, column_id, card_id, lambda c: replace(c, archived=not c.archived))


def delete_card(state: BoardState, column_id: int, card_id: int) -> BoardState:
    """Permanently remove a card from its column."""
    column = state.find_column(column_id)
    if column is None or not any(c.id == card_id for c in column.cards):
        return state
    expanded = {k: v for k, v in state.expanded_cards.items() if k != card_id}
    state = _update_column(state, column_id, lambda c: replace(c, cards=tuple(x for x in c.cards if x.id != card_id)))
    return replace(state, expanded_cards=expanded)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# View state
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def toggle_card_expanded(state: BoardState, card_id: int) -> BoardState:
    expanded = dict(state.expanded_cards)
    expanded[card_id] = not expanded.get(card_id, False)
    return replace(state, expanded_cards=expanded)


def expand_all(state: BoardState) -> BoardState:
    return replace(state, expanded_cards={card.id: True for card in state.all_cards()})


def collapse_all(state: BoardState) -> BoardState:
    return replace(state, expanded_cards={})


def locate_card(state: BoardState, card_id: int) -> Tuple[BoardState, Optional[int]]:
    """Collapse everything except card_id and report which column holds it.

    Returns (new_state, column_id). column_id is None when the card is unknown,
    in which case the state is returned unchanged.
    """
    found = state.find_card(card_id)
    if found is None:
        return state, None
    column, _ = found
    return replace(state, expanded_cards={card_id: True}), column.id


def set_show_archived(state: BoardState, show: bool) -> BoardState:
    return replace(state, show_archived=bool(show))


def set_show_top10(state: BoardState, show: bool) -> BoardState:
    return replace(state, show_top10=bool(show))


def select_project(state: BoardState, project_id: Optional[int]) -> BoardState:
    """Set the project filter; None shows every column."""
    return replace(state, selected_project_id=project_id)

"""
Card prioritization.

One comparator serves every ranked view (per-column display and the
cross-column top list). Keys, in order:
  1. archived      - live cards before archived cards
  2. color         - index in the palette; unknown colors rank last
  3. due date      - earliest first; cards without a due date last

Ties keep their input order (sorted() is stable).
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from .schema import Card, DEFAULT_COLORS

T = TypeVar("T")


def color_priority(color: str, palette: Sequence[str] = DEFAULT_COLORS) -> int:
    """Index of color in palette; len(palette) when absent."""
    try:
        return list(palette).index(color)
    except ValueError:
        return len(palette)


def due_date_key(due: Optional[datetime]) -> Tuple[int, datetime]:
    """Sort key for a due date. Missing dates compare equal to each other, after all others."""
    if due is None:
        return (1, datetime.min)
    if due.tzinfo is not None:
        due = due.astimezone(timezone.utc).replace(tzinfo=None)
    return (0, due)


def card_sort_key(card: Card, palette: Sequence[str] = DEFAULT_COLORS):
    return (card.archived, color_priority(card.color, palette), due_date_key(card.due_date))


def sort_cards(cards: Iterable[T], palette: Sequence[str] = DEFAULT_COLORS, get_card=lambda item: item) -> List[T]:
    """Return a new list of cards in priority order. The input is not modified.

    `get_card` extracts the Card from each item, so tagged wrappers (see
    views.RankedCard) sort with the same rules.
    """
    return sorted(cards, key=lambda item: card_sort_key(get_card(item), palette))

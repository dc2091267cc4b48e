"""
Tests for card prioritization and the derived views built on it.
"""
from datetime import datetime, timedelta, timezone

from taskboard import commands
from taskboard.ordering import color_priority, sort_cards
from taskboard.schema import BoardState, Card, Column, DEFAULT_COLORS
from taskboard.views import (
    filtered_columns,
    project_name,
    time_remaining,
    top_cards,
    visible_cards,
    board_top_cards,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Comparator
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_color_priority_unknown_color_ranks_last():
    assert color_priority(DEFAULT_COLORS[0]) == 0
    assert color_priority(DEFAULT_COLORS[5]) == 5
    assert color_priority("#000000") == len(DEFAULT_COLORS)


def test_archived_never_before_live():
    cards = [
        Card(id=1, color=DEFAULT_COLORS[0], archived=True, due_date=datetime(2020, 1, 1)),
        Card(id=2, color="#ABCDEF"),
        Card(id=3, color=DEFAULT_COLORS[2], archived=True),
        Card(id=4, color=DEFAULT_COLORS[5]),
    ]
    ordered = sort_cards(cards)
    flags = [c.archived for c in ordered]
    assert flags == sorted(flags)
    assert [c.id for c in ordered] == [4, 2, 1, 3]


def test_colors_follow_palette_order():
    cards = [Card(id=i, color=color) for i, color in reversed(list(enumerate(DEFAULT_COLORS)))]
    assert [c.color for c in sort_cards(cards)] == list(DEFAULT_COLORS)


def test_custom_palette():
    palette = ("blue", "red")
    cards = [Card(id=1, color="red"), Card(id=2, color="green"), Card(id=3, color="blue")]
    assert [c.id for c in sort_cards(cards, palette)] == [3, 1, 2]


def test_due_date_sorts_before_missing_due_date():
    with_due = Card(id=1, due_date=datetime(2030, 1, 1))
    without = Card(id=2)
    assert sort_cards([without, with_due]) == [with_due, without]


def test_earlier_due_date_first():
    late = Card(id=1, due_date=datetime(2024, 6, 2))
    early = Card(id=2, due_date=datetime(2024, 6, 1))
    assert [c.id for c in sort_cards([late, early])] == [2, 1]


def test_mixed_timezone_due_dates_compare_in_utc():
    # 10:00+02:00 is 08:00 UTC, earlier than a naive 09:00
    aware = Card(id=1, due_date=datetime(2024, 6, 1, 10, 0, tzinfo=timezone(timedelta(hours=2))))
    naive = Card(id=2, due_date=datetime(2024, 6, 1, 9, 0))
    assert [c.id for c in sort_cards([naive, aware])] == [1, 2]


def test_ties_keep_input_order():
    cards = [Card(id=i, title=f"t{i}") for i in (5, 3, 9, 1)]
    assert [c.id for c in sort_cards(cards)] == [5, 3, 9, 1]


def test_sort_does_not_mutate_input():
    cards = [Card(id=1, archived=True), Card(id=2)]
    before = list(cards)
    result = sort_cards(cards)
    assert cards == before
    assert result is not cards


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Column view
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_column_scenario_archive_and_show_archived(tomorrow):
    a = Card(id=1, title="A", color=DEFAULT_COLORS[0], due_date=tomorrow)
    b = Card(id=2, title="B", color=DEFAULT_COLORS[1])
    column = Column(id=10, title="To Do", cards=(b, a))

    assert [c.title for c in visible_cards(column)] == ["A", "B"]

    state = commands.archive_card(BoardState(columns=(column,), next_id=11), 10, 1)
    archived_column = state.find_column(10)

    assert [c.title for c in visible_cards(archived_column, show_archived=False)] == ["B"]
    assert [c.title for c in visible_cards(archived_column, show_archived=True)] == ["B", "A"]


def test_filtered_columns(board):
    assert [c.id for c in filtered_columns(board.columns)] == [10, 11, 12]
    assert [c.id for c in filtered_columns(board.columns, 1)] == [10]
    assert filtered_columns(board.columns, 99) == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Top-ranked view
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_top_cards_ranks_across_columns(board):
    ranked = top_cards(board.columns)
    assert [r.card.id for r in ranked] == [100, 110, 101, 120, 111]
    first = ranked[0]
    assert first.column_id == 10
    assert first.column_title == "To Do"
    assert first.project_id == 1


def test_top_cards_never_include_archived(board):
    board = commands.set_show_archived(board, True)
    ranked = board_top_cards(board)
    assert all(not r.card.archived for r in ranked)
    assert 102 not in [r.card.id for r in ranked]


def test_top_cards_project_filter(board):
    assert [r.card.id for r in top_cards(board.columns, project_id=2)] == [110, 111]


def test_top_cards_bounded_to_ten():
    columns = tuple(
        Column(id=c, title=f"col {c}", cards=tuple(
            Card(id=c * 100 + i, color=DEFAULT_COLORS[i % len(DEFAULT_COLORS)], archived=(i % 4 == 0))
            for i in range(8)
        ))
        for c in range(1, 4)
    )
    ranked = top_cards(columns)
    assert len(ranked) == 10
    assert not any(r.card.archived for r in ranked)
    assert len(top_cards(columns, limit=3)) == 3


def test_top_cards_to_dict_carries_location(board):
    data = top_cards(board.columns)[0].to_dict()
    assert data["id"] == 100
    assert data["columnId"] == 10
    assert data["columnTitle"] == "To Do"
    assert data["projectId"] == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Display helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_project_name(board):
    assert project_name(board, 1) == "Web"
    assert project_name(board, None) == "No Project"
    assert project_name(board, 42) == "No Project"


def test_time_remaining():
    now = datetime(2024, 5, 1, 12, 0)
    assert time_remaining(None, now) is None
    assert time_remaining(now + timedelta(days=2, hours=3, minutes=1), now) == "2d 3h remaining"
    assert time_remaining(now + timedelta(hours=5, minutes=10), now) == "5h remaining"
    assert time_remaining(now + timedelta(minutes=30), now) == "Less than 1h remaining"
    assert time_remaining(now - timedelta(minutes=1), now) == "Expired"


def test_time_remaining_mixed_timezones():
    now = datetime(2024, 5, 1, 12, 0)
    due = datetime(2024, 5, 1, 15, 30, tzinfo=timezone.utc)
    assert time_remaining(due, now) == "3h remaining"

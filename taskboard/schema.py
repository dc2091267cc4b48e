"""
Board schema: projects, columns, cards and the whole-board snapshot.

Every entity is frozen. Commands never edit a card in place; they build a
new enclosing collection and a new BoardState (see commands.py).

Snapshot shape (local cache, export and import all share it):
  { projects, columns, expandedCards, showArchived, showTop10, selectedProjectId }
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Tuple, Dict, Any, Mapping


# Highest priority first. Colors outside the palette rank after all of these.
DEFAULT_COLORS: Tuple[str, ...] = (
    "#FF5252",  # red
    "#FF4081",  # pink
    "#7C4DFF",  # purple
    "#448AFF",  # blue
    "#64FFDA",  # teal
    "#FFD740",  # amber
)

NEW_CARD_TITLE = "New Card"
NEW_COLUMN_TITLE = "New Column"
DEFAULT_PROJECT_NAME = "Default Project"


class SnapshotError(ValueError):
    """Raised when a persisted or imported snapshot cannot be decoded."""
    pass


def clamp_progress(value: Any) -> int:
    """Coerce to int the way a form field is parsed, then clamp to [0, 100]."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid progress value: {value!r}")
    try:
        if isinstance(value, str):
            value = float(value.strip())
        number = int(value)
    except (TypeError, OverflowError) as e:
        raise ValueError(f"Invalid progress value: {value!r}") from e
    return max(0, min(100, number))


def require_text(value: Any, field_name: str) -> str:
    """Text fields (titles, names, colors, notes) must be strings."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    return value


def parse_due_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 due date. Empty values mean "no due date"."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid due date: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class Project:
    """A named grouping that columns may reference."""
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Project":
        return cls(id=_require_id(data, "project"), name=str(_require(data, "name", "project")))


@dataclass(frozen=True)
class Card:
    """A single task card. Display order is never stored, see ordering.py."""
    id: int
    title: str = NEW_CARD_TITLE
    color: str = DEFAULT_COLORS[0]
    due_date: Optional[datetime] = None
    notes: str = ""
    archived: bool = False
    progress: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "notes": self.notes,
            "archived": self.archived,
            "progress": self.progress,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Card":
        """Deserialize from dict. Optional fields fall back to new-card defaults."""
        try:
            due_date = parse_due_date(data.get("dueDate"))
            progress = clamp_progress(data.get("progress", 0))
        except ValueError as e:
            raise SnapshotError(f"card {data.get('id')!r}: {e}") from e
        return cls(
            id=_require_id(data, "card"),
            title=str(_require(data, "title", "card")),
            color=str(data.get("color") or DEFAULT_COLORS[0]),
            due_date=due_date,
            notes=str(data.get("notes") or ""),
            archived=bool(data.get("archived", False)),
            progress=progress,
        )


@dataclass(frozen=True)
class Column:
    """An ordered group of cards, optionally assigned to a project."""
    id: int
    title: str = NEW_COLUMN_TITLE
    project_id: Optional[int] = None
    cards: Tuple[Card, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title}
        if self.project_id is not None:
            data["projectId"] = self.project_id
        data["cards"] = [c.to_dict() for c in self.cards]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Column":
        cards = _require(data, "cards", "column")
        if not isinstance(cards, list):
            raise SnapshotError(f"column {data.get('id')!r}: cards must be a list")
        return cls(
            id=_require_id(data, "column"),
            title=str(_require(data, "title", "column")),
            project_id=data.get("projectId"),
            cards=tuple(Card.from_dict(_as_mapping(c, "card")) for c in cards),
        )


@dataclass(frozen=True)
class BoardState:
    """The whole board: entity collections plus display flags.

    `next_id` is the identifier counter. It lives on the snapshot so commands
    stay pure, and it is re-derived on decode rather than persisted.
    """
    projects: Tuple[Project, ...] = ()
    columns: Tuple[Column, ...] = ()
    expanded_cards: Mapping[int, bool] = field(default_factory=dict)
    show_archived: bool = False
    show_top10: bool = True
    selected_project_id: Optional[int] = None
    next_id: int = field(default=1, compare=False)

    @classmethod
    def initial(cls) -> "BoardState":
        """First-run board: one project, one column, one card."""
        project = Project(id=1, name=DEFAULT_PROJECT_NAME)
        column = Column(id=2, title="To Do", project_id=project.id, cards=(Card(id=3, title="Task 1"),))
        return cls(projects=(project,), columns=(column,), next_id=4)

    def all_cards(self) -> Tuple[Card, ...]:
        return tuple(card for column in self.columns for card in column.cards)

    def find_column(self, column_id: int) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def find_card(self, card_id: int) -> Optional[Tuple[Column, Card]]:
        for column in self.columns:
            for card in column.cards:
                if card.id == card_id:
                    return column, card
        return None

    def find_project(self, project_id: int) -> Optional[Project]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    # -------------------- serialization --------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "columns": [c.to_dict() for c in self.columns],
            "expandedCards": {str(k): v for k, v in self.expanded_cards.items()},
            "showArchived": self.show_archived,
            "showTop10": self.show_top10,
            "selectedProjectId": self.selected_project_id,
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any) -> "BoardState":
        """Decode a snapshot. Raises SnapshotError on any missing required field."""
        data = _as_mapping(data, "snapshot")
        raw_projects = _require(data, "projects", "snapshot")
        raw_columns = _require(data, "columns", "snapshot")
        if not isinstance(raw_projects, list) or not isinstance(raw_columns, list):
            raise SnapshotError("snapshot: projects and columns must be lists")

        projects = tuple(Project.from_dict(_as_mapping(p, "project")) for p in raw_projects)
        columns = tuple(Column.from_dict(_as_mapping(c, "column")) for c in raw_columns)

        expanded = data.get("expandedCards") or {}
        if not isinstance(expanded, dict):
            raise SnapshotError("snapshot: expandedCards must be an object")

        state = cls(
            projects=projects,
            columns=columns,
            expanded_cards={_card_key(k): bool(v) for k, v in expanded.items()},
            show_archived=bool(data.get("showArchived", False)),
            show_top10=bool(data.get("showTop10", True)),
            selected_project_id=data.get("selectedProjectId"),
        )
        return replace(state, next_id=_max_id(state) + 1)

    @classmethod
    def from_json(cls, text: Any) -> "BoardState":
        if isinstance(text, (bytes, bytearray)):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise SnapshotError(f"snapshot is not UTF-8 text: {e}") from e
        try:
            data = json.loads(text)
        except (ValueError, TypeError) as e:
            raise SnapshotError(f"snapshot is not valid JSON: {e}") from e
        return cls.from_dict(data)


def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in data or data[key] is None:
        raise SnapshotError(f"{kind} is missing required field '{key}'")
    return data[key]


def _require_id(data: Mapping[str, Any], kind: str) -> int:
    value = _require(data, "id", kind)
    if not isinstance(value, int) or isinstance(value, bool):
        raise SnapshotError(f"{kind} id must be an integer, got {value!r}")
    return value


def _as_mapping(value: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise SnapshotError(f"{kind} must be a JSON object, got {type(value).__name__}")
    return value


def _card_key(key: Any) -> Any:
    # JSON object keys are always strings; card ids are usually ints
    if isinstance(key, str):
        try:
            return int(key)
        except ValueError:
            pass
    return key


def _max_id(state: BoardState) -> int:
    ids = [p.id for p in state.projects]
    ids += [c.id for c in state.columns]
    ids += [card.id for card in state.all_cards()]
    return max(ids, default=0)

"""
Board persistence: local cache, save/load, export/import, autosave.

Save is asynchronous. A non-reentrant lock marks a save in flight; a save
requested while one is running is dropped, not queued. The next autosave
tick picks up whatever changed in between.
"""
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone, date
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from .schema import BoardState, SnapshotError

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "management-board"


class StorageError(Exception):
    """Raised when the local cache cannot be read or written."""
    pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Local cache
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class LocalCache:
    """String key/value storage in a SQLite system_state table."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open cache at {db_path}: {e}") from e

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM system_state WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read '{key}' from cache: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO system_state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """, (key, value, now))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot write '{key}' to cache: {e}") from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Session: the current board
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BoardSession:
    """Holds the current BoardState and serializes commits against each other."""

    def __init__(self, state: Optional[BoardState] = None):
        self._state = state if state is not None else BoardState.initial()
        self._lock = threading.Lock()

    @property
    def state(self) -> BoardState:
        return self._state

    def apply(self, command: Callable[..., BoardState], *args, **kwargs) -> BoardState:
        """Run a command against the current board and commit its result."""
        with self._lock:
            self._state = command(self._state, *args, **kwargs)
            return self._state

    def apply_with_result(self, command: Callable[..., Tuple[BoardState, Any]], *args, **kwargs) -> Any:
        """Like apply(), for commands that return (new_state, result). Returns result."""
        with self._lock:
            self._state, result = command(self._state, *args, **kwargs)
            return result

    def replace(self, state: BoardState) -> None:
        with self._lock:
            self._state = state


@dataclass(frozen=True)
class ExportArtifact:
    """A downloadable snapshot."""
    filename: str
    content: str


def export_filename(day: Optional[date] = None) -> str:
    """management-board-<ISO date>.json (UTC date by default)."""
    day = day or datetime.now(timezone.utc).date()
    return f"{EXPORT_PREFIX}-{day.isoformat()}.json"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Autosave timer
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AutosaveTimer(threading.Thread):
    """Calls `callback` every `interval` seconds until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], Any]):
        super().__init__(name="taskboard-autosave", daemon=True)
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()

    def run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Autosave tick failed: {e}")

    def cancel(self):
        self._stopped.set()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Persistence adapter
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BoardPersistence:
    """Save, load, export and import for one BoardSession.

    Use as a context manager to tie the autosave timer to a block:

        with BoardPersistence(session, cache) as persistence:
            ...
    """

    def __init__(
        self,
        session: BoardSession,
        cache: LocalCache,
        cache_key: str = "managementBoardData",
        save_delay: float = 0.5,
        autosave_interval: float = 60.0,
        shutdown_timeout: float = 10.0,
    ):
        self.session = session
        self.cache = cache
        self.cache_key = cache_key
        self.save_delay = save_delay
        self.autosave_interval = autosave_interval
        self.shutdown_timeout = shutdown_timeout

        self.last_saved: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._saving = threading.Lock()
        self._save_thread: Optional[threading.Thread] = None
        self._timer: Optional[AutosaveTimer] = None
        self._timer_guard = threading.Lock()

    # -------------------- save --------------------

    @property
    def saving(self) -> bool:
        return self._saving.locked()

    def save(self) -> Optional[threading.Thread]:
        """Start a save of the current board.

        Returns the worker thread, or None when a save is already in flight
        (the request is dropped).
        """
        if not self._saving.acquire(blocking=False):
            logger.info("Save already in progress, skipping")
            return None
        snapshot = self.session.state
        worker = threading.Thread(
            target=self._write, args=(snapshot,), name="taskboard-save", daemon=True
        )
        self._save_thread = worker
        try:
            worker.start()
        except RuntimeError:
            self._saving.release()
            raise
        return worker

    def _write(self, snapshot: BoardState) -> None:
        try:
            if self.save_delay > 0:
                time.sleep(self.save_delay)
            self.cache.set(self.cache_key, snapshot.to_json())
            self.last_saved = datetime.now()
            self.last_error = None
            logger.info(f"Board saved ({len(snapshot.columns)} columns, {len(snapshot.all_cards())} cards)")
        except StorageError as e:
            self.last_error = str(e)
            logger.warning(f"Save failed: {e}")
        finally:
            self._saving.release()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the most recent save finishes. True if nothing is in flight."""
        worker = self._save_thread
        if worker is not None:
            worker.join(timeout)
        return not self.saving

    # -------------------- autosave --------------------

    @property
    def autosave_running(self) -> bool:
        return self._timer is not None and self._timer.is_alive()

    def start_autosave(self) -> bool:
        """Start the recurring save timer. Only one timer per instance; False if already running."""
        with self._timer_guard:
            if self._timer is not None:
                return False
            self._timer = AutosaveTimer(self.autosave_interval, self.save)
            self._timer.start()
        logger.info(f"Autosave every {self.autosave_interval}s")
        return True

    def stop_autosave(self) -> None:
        with self._timer_guard:
            timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        if timer is not threading.current_thread():
            timer.join()
        logger.info("Autosave stopped")

    def __enter__(self) -> "BoardPersistence":
        self.start_autosave()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop_autosave()
        # let an in-flight save finish before the process exits
        if not self.wait(self.shutdown_timeout):
            logger.warning(f"Save still running after {self.shutdown_timeout}s, exiting anyway")

    # -------------------- load --------------------

    def load(self) -> bool:
        """Replace the board from the cache. False (board untouched) when nothing is cached.

        Raises SnapshotError if the cached value cannot be decoded; the board is
        left as it was.
        """
        raw = self.cache.get(self.cache_key)
        if raw is None:
            logger.info("No cached board, keeping current state")
            return False
        state = BoardState.from_json(raw)
        self.session.replace(state)
        logger.info(f"Board loaded from cache ({len(state.columns)} columns)")
        return True

    # -------------------- export / import --------------------

    def export_snapshot(self, day: Optional[date] = None) -> ExportArtifact:
        return ExportArtifact(filename=export_filename(day), content=self.session.state.to_json(indent=2))

    def export_to(self, directory: Path, day: Optional[date] = None) -> Path:
        """Write the export file into directory and return its path."""
        artifact = self.export_snapshot(day)
        path = Path(directory) / artifact.filename
        path.write_text(artifact.content, encoding="utf-8")
        logger.info(f"Board exported to {path}")
        return path

    def import_snapshot(self, raw: Any) -> BoardState:
        """Decode raw file content and replace the whole board.

        On SnapshotError nothing is applied and the error propagates so the
        caller can show it.
        """
        try:
            state = BoardState.from_json(raw)
        except SnapshotError as e:
            logger.warning(f"Import rejected: {e}")
            raise
        self.session.replace(state)
        logger.info(f"Board imported ({len(state.projects)} projects, {len(state.columns)} columns)")
        return state

#!/usr/bin/env python3
"""
Task Board Server
-----------------
JSON API over a BoardSession: board views, every board command, manual
save, export download and import upload.

Usage:
    taskboard-server --port 3000
    taskboard-server --config config.yaml --cache /tmp/board.db

API:
    GET  /api/board                          → snapshot + sorted columns + top list
    GET  /api/top?project_id=<id>            → top-ranked live cards
    POST /api/projects                       → { name }
    PUT  /api/projects/<id>                  → { name }
    POST /api/columns                        → { title?, projectId? }
    PUT  /api/columns/<id>                   → { title?, projectId? }
    DELETE /api/columns/<id>?confirm=true    → column and all its cards
    POST /api/columns/move                   → { source, destination|null }
    POST /api/columns/<id>/cards             → { title? }
    PUT  /api/columns/<id>/cards/<card>      → { title?, color?, dueDate?, notes?, progress? }
    POST /api/columns/<id>/cards/<card>/archive
    POST /api/columns/<id>/cards/<card>/toggle-archive
    DELETE /api/columns/<id>/cards/<card>?confirm=true
    POST /api/cards/<card>/expand | /locate
    POST /api/expand-all | /api/collapse-all
    POST /api/view                           → { showArchived?, showTop10?, selectedProjectId? }
    POST /api/save                           → 202 started, 409 already saving
    GET  /api/export                         → management-board-<date>.json attachment
    POST /api/import                         → multipart "file" or raw JSON body

Mutating routes need the X-API-Key header (TASKBOARD_API_SECRET).
"""

import hmac
import logging
import sys
from functools import wraps
from typing import Any, Dict, Optional

from flask import Flask, Response, current_app, jsonify, request

from . import commands
from .config import BoardConfig
from .persistence import BoardPersistence, BoardSession, LocalCache, StorageError
from .schema import BoardState, NEW_CARD_TITLE, NEW_COLUMN_TITLE, SnapshotError
from .views import board_top_cards, filtered_columns, project_name, time_remaining, top_cards, visible_cards

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes")


# ── App state ────────────────────────────────────────────────────────────────

def _engine() -> Dict[str, Any]:
    return current_app.extensions["taskboard"]


def _session() -> BoardSession:
    return _engine()["session"]


def _persistence() -> BoardPersistence:
    return _engine()["persistence"]


def _config() -> BoardConfig:
    return _engine()["config"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = _config().api_secret
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Helpers ──────────────────────────────────────────────────────────────────

def _body() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _confirmed() -> bool:
    """Destructive routes must be called with confirm=true (query or body)."""
    if request.args.get("confirm", "").strip().lower() in _TRUE:
        return True
    return _body().get("confirm") is True


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return _int(value)


def _int(value: Any) -> int:
    """Parse an integer field; anything else is a 400 via the ValueError handler."""
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expected an integer, got {value!r}") from e


def _column_view(state: BoardState, column) -> Dict[str, Any]:
    palette = _config().palette
    return {
        "id": column.id,
        "title": column.title,
        "projectId": column.project_id,
        "projectName": project_name(state, column.project_id),
        "cards": [
            dict(card.to_dict(),
                 expanded=bool(state.expanded_cards.get(card.id)),
                 timeRemaining=time_remaining(card.due_date))
            for card in visible_cards(column, state.show_archived, palette)
        ],
    }


def _card_response(column_id: int, card_id: int):
    found = _session().state.find_card(card_id)
    if found is None or found[0].id != column_id:
        return jsonify({"error": "Card not found"}), 404
    return jsonify({"card": found[1].to_dict()})


def _card_exists(column_id: int, card_id: int) -> bool:
    found = _session().state.find_card(card_id)
    return found is not None and found[0].id == column_id


# ── Factory ──────────────────────────────────────────────────────────────────

def create_app(
    config: Optional[BoardConfig] = None,
    session: Optional[BoardSession] = None,
    persistence: Optional[BoardPersistence] = None,
) -> Flask:
    """Build the Flask app around one board session."""
    config = config or BoardConfig.load()
    session = session or BoardSession()
    if persistence is None:
        persistence = BoardPersistence(
            session,
            LocalCache(config.cache_path),
            cache_key=config.cache_key,
            save_delay=config.save_delay_secs,
            autosave_interval=config.autosave_interval_secs,
        )

    app = Flask(__name__)
    app.extensions["taskboard"] = {"config": config, "session": session, "persistence": persistence}
    _register_routes(app)
    return app


def _register_routes(app: Flask) -> None:

    @app.errorhandler(ValueError)
    def bad_value(e):
        return jsonify({"error": str(e)}), 400

    @app.route("/health")
    def health():
        p = _persistence()
        return jsonify({
            "status": "ok",
            "saving": p.saving,
            "lastSaved": p.last_saved.isoformat() if p.last_saved else None,
            "lastError": p.last_error,
            "autosave": p.autosave_running,
        })

    # ── Read ────────────────────────────────────────────────────────────────

    @app.route("/api/board")
    def api_board():
        state = _session().state
        cfg = _config()
        columns = filtered_columns(state.columns, state.selected_project_id)
        top = []
        if state.show_top10:
            top = [r.to_dict() for r in board_top_cards(state, cfg.palette, cfg.top_limit)]
        return jsonify({
            "board": state.to_dict(),
            "columns": [_column_view(state, c) for c in columns],
            "top": top,
            "saving": _persistence().saving,
        })

    @app.route("/api/top")
    def api_top():
        state = _session().state
        cfg = _config()
        project_id = _optional_int(request.args.get("project_id"))
        ranked = top_cards(state.columns, project_id, cfg.palette, cfg.top_limit)
        return jsonify({"cards": [r.to_dict() for r in ranked], "count": len(ranked)})

    # ── Projects ────────────────────────────────────────────────────────────

    @app.route("/api/projects", methods=["POST"])
    @require_api_key
    def api_add_project():
        name = _body().get("name")
        if not isinstance(name, str) or not name.strip():
            return jsonify({"error": "name is required"}), 400
        name = name.strip()
        state = _session().apply(commands.add_project, name)
        return jsonify({"project": state.projects[-1].to_dict()}), 201

    @app.route("/api/projects/<int:project_id>", methods=["PUT"])
    @require_api_key
    def api_rename_project(project_id):
        name = _body().get("name")
        if not isinstance(name, str) or not name.strip():
            return jsonify({"error": "name is required"}), 400
        name = name.strip()
        if _session().state.find_project(project_id) is None:
            return jsonify({"error": "Project not found"}), 404
        project = _session().apply(commands.rename_project, project_id, name).find_project(project_id)
        if project is None:
            return jsonify({"error": "Project not found"}), 404
        return jsonify({"project": project.to_dict()})

    # ── Columns ─────────────────────────────────────────────────────────────

    @app.route("/api/columns", methods=["POST"])
    @require_api_key
    def api_add_column():
        data = _body()
        title = data.get("title") or NEW_COLUMN_TITLE
        state = _session().apply(commands.add_column, title, _optional_int(data.get("projectId")))
        return jsonify({"column": state.columns[-1].to_dict()}), 201

    @app.route("/api/columns/<int:column_id>", methods=["PUT"])
    @require_api_key
    def api_update_column(column_id):
        data = _body()
        session = _session()
        if session.state.find_column(column_id) is None:
            return jsonify({"error": "Column not found"}), 404
        project_id = _optional_int(data.get("projectId"))

        def apply_updates(state):
            if "title" in data:
                state = commands.update_column_title(state, column_id, data["title"])
            if "projectId" in data:
                state = commands.set_column_project(state, column_id, project_id)
            return state

        column = session.apply(apply_updates).find_column(column_id)
        if column is None:
            return jsonify({"error": "Column not found"}), 404
        return jsonify({"column": column.to_dict()})

    @app.route("/api/columns/<int:column_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_column(column_id):
        if not _confirmed():
            return jsonify({"error": "Deleting a column removes all its cards; resend with confirm=true"}), 409
        if _session().state.find_column(column_id) is None:
            return jsonify({"error": "Column not found"}), 404
        _session().apply(commands.delete_column, column_id)
        return jsonify({"deleted": column_id})

    @app.route("/api/columns/move", methods=["POST"])
    @require_api_key
    def api_move_column():
        data = _body()
        if "source" not in data:
            return jsonify({"error": "source is required"}), 400
        source = _int(data["source"])
        destination = _optional_int(data.get("destination"))
        try:
            state = _session().apply(commands.move_column, source, destination)
        except IndexError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"columns": [c.id for c in state.columns]})

    # ── Cards ───────────────────────────────────────────────────────────────

    @app.route("/api/columns/<int:column_id>/cards", methods=["POST"])
    @require_api_key
    def api_add_card(column_id):
        session = _session()
        if session.state.find_column(column_id) is None:
            return jsonify({"error": "Column not found"}), 404
        title = _body().get("title") or NEW_CARD_TITLE
        column = session.apply(commands.add_card, column_id, title, _config().palette).find_column(column_id)
        if column is None:
            return jsonify({"error": "Column not found"}), 404
        return jsonify({"card": column.cards[-1].to_dict()}), 201

    @app.route("/api/columns/<int:column_id>/cards/<int:card_id>", methods=["PUT"])
    @require_api_key
    def api_update_card(column_id, card_id):
        if not _card_exists(column_id, card_id):
            return jsonify({"error": "Card not found"}), 404
        data = _body()
        updates = [
            ("title", commands.update_card_title),
            ("color", commands.update_card_color),
            ("dueDate", commands.update_card_due_date),
            ("notes", commands.update_card_notes),
            ("progress", commands.update_card_progress),
        ]

        def apply_updates(state):
            for key, command in updates:
                if key in data:
                    state = command(state, column_id, card_id, data[key])
            return state

        _session().apply(apply_updates)
        return _card_response(column_id, card_id)

    @app.route("/api/columns/<int:column_id>/cards/<int:card_id>/archive", methods=["POST"])
    @require_api_key
    def api_archive_card(column_id, card_id):
        if not _card_exists(column_id, card_id):
            return jsonify({"error": "Card not found"}), 404
        _session().apply(commands.archive_card, column_id, card_id)
        return _card_response(column_id, card_id)

    @app.route("/api/columns/<int:column_id>/cards/<int:card_id>/toggle-archive", methods=["POST"])
    @require_api_key
    def api_toggle_archive(column_id, card_id):
        if not _card_exists(column_id, card_id):
            return jsonify({"error": "Card not found"}), 404
        _session().apply(commands.toggle_card_archive, column_id, card_id)
        return _card_response(column_id, card_id)

    @app.route("/api/columns/<int:column_id>/cards/<int:card_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_card(column_id, card_id):
        if not _confirmed():
            return jsonify({"error": "Permanent delete; resend with confirm=true"}), 409
        if not _card_exists(column_id, card_id):
            return jsonify({"error": "Card not found"}), 404
        _session().apply(commands.delete_card, column_id, card_id)
        return jsonify({"deleted": card_id})

    # ── View state ──────────────────────────────────────────────────────────

    @app.route("/api/cards/<int:card_id>/expand", methods=["POST"])
    @require_api_key
    def api_toggle_expand(card_id):
        state = _session().apply(commands.toggle_card_expanded, card_id)
        return jsonify({"cardId": card_id, "expanded": state.expanded_cards.get(card_id, False)})

    @app.route("/api/cards/<int:card_id>/locate", methods=["POST"])
    @require_api_key
    def api_locate_card(card_id):
        column_id = _session().apply_with_result(commands.locate_card, card_id)
        if column_id is None:
            return jsonify({"error": "Card not found"}), 404
        return jsonify({"cardId": card_id, "columnId": column_id})

    @app.route("/api/expand-all", methods=["POST"])
    @require_api_key
    def api_expand_all():
        state = _session().apply(commands.expand_all)
        return jsonify({"expandedCards": {str(k): v for k, v in state.expanded_cards.items()}})

    @app.route("/api/collapse-all", methods=["POST"])
    @require_api_key
    def api_collapse_all():
        _session().apply(commands.collapse_all)
        return jsonify({"expandedCards": {}})

    @app.route("/api/view", methods=["POST"])
    @require_api_key
    def api_view():
        data = _body()
        project_id = _optional_int(data.get("selectedProjectId"))

        def apply_view(state):
            if "showArchived" in data:
                state = commands.set_show_archived(state, bool(data["showArchived"]))
            if "showTop10" in data:
                state = commands.set_show_top10(state, bool(data["showTop10"]))
            if "selectedProjectId" in data:
                state = commands.select_project(state, project_id)
            return state

        state = _session().apply(apply_view)
        return jsonify({
            "showArchived": state.show_archived,
            "showTop10": state.show_top10,
            "selectedProjectId": state.selected_project_id,
        })

    # ── Persistence ─────────────────────────────────────────────────────────

    @app.route("/api/save", methods=["POST"])
    @require_api_key
    def api_save():
        if _persistence().save() is None:
            return jsonify({"error": "Save already in progress"}), 409
        return jsonify({"saving": True}), 202

    @app.route("/api/export")
    def api_export():
        artifact = _persistence().export_snapshot()
        return Response(
            artifact.content,
            mimetype="application/json",
            headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
        )

    @app.route("/api/import", methods=["POST"])
    @require_api_key
    def api_import():
        if request.mimetype == "multipart/form-data":
            upload = request.files.get("file")
            raw = upload.read() if upload is not None else b""
        else:
            raw = request.get_data()
        if not raw:
            return jsonify({"error": "No file supplied"}), 400
        try:
            state = _persistence().import_snapshot(raw)
        except SnapshotError as e:
            return jsonify({"error": "Invalid file format", "detail": str(e)}), 400
        return jsonify({"board": state.to_dict()})


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Task Board Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--cache", help="Path to board.db (overrides TASKBOARD_CACHE)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    config = BoardConfig.load(args.config)
    if args.cache:
        config.cache_path = args.cache
        config.resolve_paths()
    host = args.host or config.host
    port = args.port or config.port

    try:
        cache = LocalCache(config.cache_path)
    except StorageError as e:
        logger.error(str(e))
        return 1

    session = BoardSession()
    persistence = BoardPersistence(
        session,
        cache,
        cache_key=config.cache_key,
        save_delay=config.save_delay_secs,
        autosave_interval=config.autosave_interval_secs,
    )
    try:
        persistence.load()
    except SnapshotError as e:
        logger.warning(f"Cached board unreadable, starting from defaults: {e}")
    except StorageError as e:
        logger.warning(f"Cache unavailable, starting from defaults: {e}")

    app = create_app(config, session, persistence)

    print(f"""
╔═══════════════════════════════════════╗
║  Task Board Server                    ║
╠═══════════════════════════════════════╣
║  URL:   http://{host}:{port:<20}║
║  Cache: {config.cache_path:<30}║
╚═══════════════════════════════════════╝
""")

    with persistence:
        app.run(host=host, port=port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())

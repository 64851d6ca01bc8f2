"""
Flask web server for SETX History.

Routes
──────
GET  /                                  Chat UI
GET  /api/health                        Liveness + timestamp
GET  /api/cities                        All cities (JSON)
GET  /api/cities/<id>                   One city with its facts
GET  /api/topics                        All reference topics
GET  /api/periods                       All periods, oldest first
GET  /api/facts                         Filtered facts (?city_id&topic_id&year&search&limit)
POST /api/conversation                  Create or reuse a conversation by session_id
POST /api/chat/conversation             Same as above
POST /api/chat                          Ask the history agent
POST /api/research                      Find or build the page for a topic
GET  /api/topic/<name>/presentation     Newest page URL for a topic
POST /api/consolidate/<category>        Build one category page
POST /api/consolidate-all               Build every category page
POST /api/contribute                    Queue a public contribution
POST /api/enhance-page                  Add research to an existing page
GET  /presentations/<file>              Generated pages
GET  /images/<path>                     Downloaded media

CLI (``flask --app web.app <command>``): init-db, populate-topics, consolidate-all.
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
import sys
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Optional

import anthropic
import click
import httpx
from dotenv import load_dotenv
from flask import (
    Blueprint,
    Flask,
    current_app,
    g,
    jsonify,
    render_template,
    request,
    send_from_directory,
)

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from core.chat import HistoryChatAgent
from core.consolidator import ConsolidationScheduler, Consolidator, category_for_topic
from core.database import HistoryStore
from core.errors import TopicNotFoundError
from core.extractor import extract_topic
from core.media import MediaCollector
from core.renderer import PAGE_URL_PREFIX, PageRenderer
from core.workflow import ResearchWorkflow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)

_TELL_ME_ABOUT = re.compile(r"^tell me about ", re.IGNORECASE)


# ── Per-request resources ──────────────────────────────────────────────────

def _settings() -> Settings:
    return current_app.config["SETTINGS"]


def get_store() -> HistoryStore:
    """Open the store once per app context; closed at teardown."""
    if "store" not in g:
        g.store = HistoryStore(_settings().db_path)
    return g.store


def close_store(exc: Optional[BaseException] = None) -> None:
    store = g.pop("store", None)
    if store is not None:
        store.close()


def _collector(store: HistoryStore) -> MediaCollector:
    return MediaCollector(store, _settings(), client=current_app.config.get("HTTP_CLIENT"))


def _workflow(store: HistoryStore, collector: MediaCollector) -> ResearchWorkflow:
    return ResearchWorkflow(store, collector, PageRenderer(store, _settings()))


def _page_url(html_path: str) -> str:
    return f"{PAGE_URL_PREFIX}/{Path(html_path).name}"


def _schedule_consolidation(topic: str) -> None:
    category = category_for_topic(topic)
    if category is not None:
        current_app.extensions["consolidation"].schedule(category)


def _consolidate_in_background(settings: Settings, category: str) -> None:
    with HistoryStore(settings.db_path) as store:
        result = Consolidator(store, settings).consolidate(category)
    if result is not None:
        logger.info("Deferred consolidation completed for %s", category)


def _parse_int(value: object) -> Optional[int]:
    """``int(value)`` or ``None`` when it isn't a whole number."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ── UI ─────────────────────────────────────────────────────────────────────

@api.route("/")
def index():
    return render_template("index.html")


@api.route("/api/health")
def health():
    return jsonify(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected",
        }
    )


# ── Reference data ─────────────────────────────────────────────────────────

@api.route("/api/cities")
def list_cities():
    return jsonify([c.model_dump(mode="json") for c in get_store().list_cities()])


@api.route("/api/cities/<city_id>")
def get_city(city_id: str):
    """Return one city with its facts, newest event first."""
    parsed = _parse_int(city_id)
    if parsed is None:
        return jsonify({"error": "Invalid city ID"}), 400

    store = get_store()
    city = store.get_city(parsed)
    if city is None:
        return jsonify({"error": "City not found"}), 404

    facts = store.list_facts(city_id=parsed, limit=500)
    return jsonify({**city.model_dump(mode="json"), "facts": [f.model_dump(mode="json") for f in facts]})


@api.route("/api/topics")
def list_topics():
    return jsonify([t.model_dump(mode="json") for t in get_store().list_topics()])


@api.route("/api/periods")
def list_periods():
    return jsonify([p.model_dump(mode="json") for p in get_store().list_periods()])


@api.route("/api/facts")
def list_facts():
    """Filter facts by city_id, topic_id, year and a search string."""
    limit = _parse_int(request.args.get("limit", "50"))
    if limit is None or not 1 <= limit <= 500:
        return jsonify({"error": "Limit must be between 1 and 500"}), 400

    filters: dict[str, Optional[int]] = {}
    for name in ("city_id", "topic_id", "year"):
        raw = request.args.get(name)
        if not raw:
            filters[name] = None
            continue
        filters[name] = _parse_int(raw)
        if filters[name] is None:
            return jsonify({"error": f"{name} must be an integer"}), 400

    facts = get_store().list_facts(search=request.args.get("search") or None, limit=limit, **filters)
    return jsonify([f.model_dump(mode="json") for f in facts])


# ── Chat ───────────────────────────────────────────────────────────────────

@api.route("/api/conversation", methods=["POST"])
@api.route("/api/chat/conversation", methods=["POST"])
def create_conversation():
    """Return the conversation for session_id, creating it (201) if needed."""
    body = request.get_json(silent=True) or {}
    session_id = str(body.get("session_id") or "").strip()
    if not session_id:
        return jsonify({"error": "session_id is required"}), 400

    conversation, created = get_store().get_or_create_conversation(session_id)
    if created:
        return jsonify({"id": conversation.id, "session_id": conversation.session_id}), 201
    return jsonify(conversation.model_dump(mode="json"))


@api.route("/api/chat", methods=["POST"])
def chat():
    """Answer a question; with a conversation_id both turns are stored."""
    body = request.get_json(silent=True) or {}
    message = str(body.get("message") or "").strip()
    if not message:
        return jsonify({"error": "Message is required"}), 400

    conversation_id = None
    if body.get("conversation_id") is not None:
        conversation_id = _parse_int(body["conversation_id"])
        if conversation_id is None:
            return jsonify({"error": "conversation_id must be an integer"}), 400

    store = get_store()
    agent = HistoryChatAgent(store, _settings(), client=current_app.config.get("CHAT_CLIENT"))
    try:
        reply = agent.chat(message, conversation_id)
    except Exception as exc:
        logger.exception("Chat failed for message=%r", message)
        return jsonify({"error": "Failed to process chat message", "details": str(exc)}), 500

    if conversation_id is not None:
        try:
            store.add_chat_message(conversation_id, "user", message)
            store.add_chat_message(conversation_id, "assistant", reply.response)
            insight = agent.extract_insight(message)
            if insight is not None:
                store.add_insight(insight.text, conversation_id, insight.city_id)
        except sqlite3.Error as exc:
            logger.error("Failed to store chat turn for conversation %d: %s", conversation_id, exc)

    return jsonify(
        {
            "response": reply.response,
            "success": reply.success,
            "context_used": reply.context_used,
        }
    )


# ── Research pages ─────────────────────────────────────────────────────────

@api.route("/api/research", methods=["POST"])
def research():
    """Serve the newest page for a topic, or research and build one."""
    body = request.get_json(silent=True) or {}
    topic = str(body.get("topic") or "").strip()
    message = str(body.get("message") or "").strip()
    if not topic and not message:
        return jsonify({"error": "Topic or message required"}), 400

    search_topic = topic or extract_topic(message) or _TELL_ME_ABOUT.sub("", message).removesuffix("?")
    search_topic = search_topic.strip()
    if not search_topic:
        return jsonify({"error": "Could not determine topic from request"}), 400

    store = get_store()
    existing = store.latest_presentation(search_topic)
    if existing is not None:
        logger.info("Page already exists for %r", search_topic)
        _schedule_consolidation(search_topic)
        return jsonify(
            {
                "success": True,
                "topic": search_topic,
                "pageUrl": _page_url(existing.html_path),
                "message": f"Page already exists for {search_topic}.",
            }
        )

    query = message or f"Tell me about {topic}"
    logger.info("Research triggered: %s", query)
    try:
        with _collector(store) as collector:
            result = _workflow(store, collector).run(query)
    except Exception as exc:
        logger.exception("Research workflow failed for query=%r", query)
        return jsonify({"error": "Research workflow failed", "details": str(exc)}), 500

    if result is None:
        return jsonify({"success": False, "message": "Could not extract topic from query"})

    _schedule_consolidation(result.topic)
    return jsonify(
        {
            "success": True,
            "topicId": result.topic_id,
            "topic": result.topic,
            "mediaCollected": result.media_count,
            "pageUrl": result.page_url,
            "message": f"Page created! Collected {result.media_count} media items.",
        }
    )


@api.route("/api/topic/<path:topic_name>/presentation")
def topic_presentation(topic_name: str):
    presentation = get_store().latest_presentation(topic_name)
    if presentation is None:
        return jsonify({"exists": False})
    return jsonify({"url": _page_url(presentation.html_path), "exists": True})


@api.route("/api/enhance-page", methods=["POST"])
def enhance_page():
    """Collect more media for an existing topic and re-render its page."""
    body = request.get_json(silent=True) or {}
    query = str(body.get("query") or "").strip()
    if body.get("topicId") in (None, "") or not query:
        return jsonify({"success": False, "error": "Missing topicId or query"}), 400

    topic_id = _parse_int(body["topicId"])
    if topic_id is None:
        return jsonify({"success": False, "error": "Invalid topicId"}), 400

    store = get_store()
    topic_name = str(body.get("topicName") or "").strip()
    if not topic_name:
        existing = store.get_researched_topic(topic_id)
        topic_name = existing.topic if existing else ""

    logger.info("Enhancing page for topic %r with query %r", topic_name, query)
    try:
        with _collector(store) as collector:
            result = _workflow(store, collector).enhance(topic_id, topic_name, query)
    except TopicNotFoundError as exc:
        return jsonify({"success": False, "error": str(exc)}), 404
    except Exception as exc:
        logger.exception("Page enhancement failed for topic id=%d", topic_id)
        return jsonify({"success": False, "error": str(exc) or "Failed to enhance page"}), 500

    if result is None or result.media_count == 0:
        return jsonify(
            {
                "success": False,
                "error": "No new content found for this query. Try rephrasing or asking about a different aspect.",
            }
        )
    return jsonify(
        {
            "success": True,
            "message": f"Added {result.media_count} new media items to the page",
            "mediaAdded": result.media_count,
            "topicId": result.topic_id,
            "pageUrl": result.page_url,
        }
    )


# ── Consolidation ──────────────────────────────────────────────────────────

@api.route("/api/consolidate/<path:category>", methods=["POST"])
def consolidate(category: str):
    result = Consolidator(get_store(), _settings()).consolidate(category)
    if result is None:
        return jsonify(
            {"success": False, "message": f"No presentations found to consolidate for: {category}"}
        )
    return jsonify(
        {
            "success": True,
            "message": f"Consolidated category: {category}",
            "file": result.filename,
            "url": result.url,
        }
    )


@api.route("/api/consolidate-all", methods=["POST"])
def consolidate_all():
    results = Consolidator(get_store(), _settings()).consolidate_all()
    return jsonify(
        {
            "success": True,
            "message": f"Consolidated {len(results)} categories",
            "results": [r.model_dump() for r in results],
        }
    )


# ── Contributions ──────────────────────────────────────────────────────────

@api.route("/api/contribute", methods=["POST"])
def contribute():
    body = request.get_json(silent=True) or {}
    required = {name: str(body.get(name) or "").strip() for name in ("topic", "fact_title", "fact_content")}
    if not all(required.values()):
        return jsonify({"error": "Missing required fields"}), 400

    contribution_id = get_store().add_contribution(
        required["topic"],
        required["fact_title"],
        required["fact_content"],
        source=body.get("source"),
        contributor_name=body.get("contributor_name"),
        contributor_email=body.get("contributor_email"),
    )
    return jsonify(
        {
            "success": True,
            "id": contribution_id,
            "message": "Thank you for your contribution! It will be reviewed and added to the archive.",
        }
    ), 201


# ── Generated files ────────────────────────────────────────────────────────

@api.route("/presentations/<path:filename>")
def presentation_file(filename: str):
    return send_from_directory(_settings().presentations_dir, filename)


@api.route("/images/<path:filename>")
def image_file(filename: str):
    return send_from_directory(_settings().public_dir / "images", filename)


# ── CLI ────────────────────────────────────────────────────────────────────

def _register_commands(app: Flask) -> None:
    settings: Settings = app.config["SETTINGS"]

    @app.cli.command("init-db")
    def init_db_command():
        """Create the tables and load the reference data."""
        with HistoryStore(settings.db_path) as store:
            store.init_db()
            store.seed()
        click.echo(f"Database ready at {settings.db_path}")

    @app.cli.command("populate-topics")
    @click.option("--delay", default=2.0, show_default=True, help="Seconds between topics.")
    def populate_topics_command(delay: float):
        """Build a page for every reference topic that has none."""
        with HistoryStore(settings.db_path) as store, MediaCollector(
            store, settings, client=app.config.get("HTTP_CLIENT")
        ) as collector:
            statuses = ResearchWorkflow(store, collector, PageRenderer(store, settings)).populate_all(delay)
        for name, status in statuses.items():
            click.echo(f"{status:>8}  {name}")

    @app.cli.command("consolidate-all")
    @click.option("--delay", default=None, type=float, help="Seconds between categories.")
    def consolidate_all_command(delay: Optional[float]):
        """Build every category page."""
        with HistoryStore(settings.db_path) as store:
            results = Consolidator(store, settings).consolidate_all(delay)
        for result in results:
            click.echo(f"{result.category}: {result.url} ({result.presentation_count} presentations)")


# ── Factory ────────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
    chat_client: Optional[anthropic.Anthropic] = None,
) -> Flask:
    """Build the Flask app; initialises and seeds the database on startup."""
    settings = settings or Settings()
    try:
        settings.validate()
    except ValueError as exc:
        logger.warning("%s Chat will answer with a fallback message.", exc)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["HTTP_CLIENT"] = http_client
    app.config["CHAT_CLIENT"] = chat_client

    with HistoryStore(settings.db_path) as store:
        store.init_db()
        store.seed()

    app.extensions["consolidation"] = ConsolidationScheduler(
        partial(_consolidate_in_background, settings),
        delay=settings.consolidation_delay,
    )
    app.teardown_appcontext(close_store)
    app.register_blueprint(api)
    _register_commands(app)
    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)

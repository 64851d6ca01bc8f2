"""
SQLite-backed storage for SETX History.

Schema
──────
historical_cities / historical_topics / historical_periods
    lookup tables, filled by ``seed()``
historical_facts
    facts with optional city/topic/period references
topics_researched   one row per research run (unless an existing id is enhanced)
topic_media         downloaded media files linked to a researched topic
presentations       generated pages: full HTML plus structured fragments (JSON)
consolidated_pages  one row per category consolidation run
chat_conversations / chat_messages / learned_insights
public_contributions

Timestamps are ISO-8601 UTC strings written by Python, so "newest first"
ordering is a plain string sort. Where several rows could be "the" match,
the newest ``created_at`` wins and ties go to the highest id.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from core import seed as seed_data
from core.models import (
    ChatMessage,
    ConsolidatedPage,
    Contribution,
    Conversation,
    HistoricalCity,
    HistoricalFact,
    HistoricalPeriod,
    HistoricalTopic,
    PageFragments,
    Presentation,
    ResearchedTopic,
    TopicMedia,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS historical_cities (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT NOT NULL UNIQUE,
    county         TEXT,
    founded_year   INTEGER,
    founding_story TEXT,
    nickname       TEXT
);

CREATE TABLE IF NOT EXISTS historical_topics (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL UNIQUE,
    description TEXT,
    icon        TEXT
);

CREATE TABLE IF NOT EXISTS historical_periods (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    start_year   INTEGER,
    end_year     INTEGER,
    description  TEXT,
    significance TEXT
);

CREATE TABLE IF NOT EXISTS historical_facts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL,
    event_date  TEXT,
    event_year  INTEGER,
    city_id     INTEGER REFERENCES historical_cities(id),
    topic_id    INTEGER REFERENCES historical_topics(id),
    period_id   INTEGER REFERENCES historical_periods(id),
    source_url  TEXT,
    source_name TEXT,
    image_url   TEXT,
    is_verified INTEGER DEFAULT 0,
    importance  INTEGER DEFAULT 5
);

CREATE TABLE IF NOT EXISTS topics_researched (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    topic                  TEXT NOT NULL,
    keywords               TEXT,
    user_id                TEXT DEFAULT 'default',
    researched_at          TEXT NOT NULL,
    presentation_generated INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS topic_media (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    topic_id     INTEGER NOT NULL REFERENCES topics_researched(id),
    media_path   TEXT NOT NULL,
    media_type   TEXT DEFAULT 'image',
    title        TEXT,
    source       TEXT,
    collected_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS presentations (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    topic_id   INTEGER NOT NULL REFERENCES topics_researched(id),
    title      TEXT NOT NULL,
    content    TEXT,
    html_path  TEXT,
    fragments  TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS consolidated_pages (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    main_topic         TEXT NOT NULL,
    display_name       TEXT NOT NULL,
    html_path          TEXT NOT NULL,
    presentation_count INTEGER DEFAULT 0,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_conversations (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT UNIQUE,
    user_ip    TEXT,
    started_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id INTEGER REFERENCES chat_conversations(id),
    role            TEXT NOT NULL,
    content         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS learned_insights (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id    INTEGER REFERENCES chat_conversations(id),
    insight            TEXT NOT NULL,
    topic_id           INTEGER REFERENCES historical_topics(id),
    city_id            INTEGER REFERENCES historical_cities(id),
    needs_verification INTEGER DEFAULT 1,
    created_at         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS public_contributions (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    topic             TEXT NOT NULL,
    fact_title        TEXT NOT NULL,
    fact_content      TEXT NOT NULL,
    source            TEXT,
    contributor_name  TEXT DEFAULT 'Anonymous',
    contributor_email TEXT,
    status            TEXT DEFAULT 'pending',
    created_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_facts_city ON historical_facts(city_id);
CREATE INDEX IF NOT EXISTS idx_facts_topic ON historical_facts(topic_id);
CREATE INDEX IF NOT EXISTS idx_facts_year ON historical_facts(event_year);
CREATE INDEX IF NOT EXISTS idx_media_topic ON topic_media(topic_id);
CREATE INDEX IF NOT EXISTS idx_presentations_topic ON presentations(topic_id);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON chat_messages(conversation_id);
"""

_FACT_SELECT = """
    SELECT hf.*, hc.name AS city_name, ht.name AS topic_name
    FROM historical_facts hf
    LEFT JOIN historical_cities hc ON hf.city_id = hc.id
    LEFT JOIN historical_topics ht ON hf.topic_id = ht.id
"""

_PRESENTATION_SELECT = """
    SELECT p.*, t.topic AS research_topic
    FROM presentations p
    JOIN topics_researched t ON p.topic_id = t.id
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _like(term: str) -> str:
    """Substring pattern for *term*, with its own % and _ matched literally."""
    escaped = term.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class HistoryStore:
    """Owns one SQLite connection for its lifetime.

    Open on construction, release with :meth:`close` (or use it as a
    context manager). Components receive a store rather than opening the
    database themselves.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Flask may hand the store to a worker thread for the same request.
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> HistoryStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection, committing on success and rolling back on error."""
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    # ── Setup ──────────────────────────────────────────────────────────────

    def init_db(self) -> None:
        """Create every table and index that doesn't exist yet."""
        with self._transaction() as conn:
            conn.executescript(SCHEMA)
        logger.info("History DB initialised at %s", self.path)

    def seed(self) -> None:
        """Load the reference cities, topics, periods and facts.

        Safe to call on every start: lookup rows are insert-or-ignore and
        periods/facts are only loaded into empty tables.
        """
        with self._transaction() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO historical_cities (name, county, founded_year, founding_story) "
                "VALUES (:name, :county, :founded_year, :founding_story)",
                seed_data.CITIES,
            )
            conn.executemany(
                "INSERT OR IGNORE INTO historical_topics (name, description, icon) "
                "VALUES (:name, :description, :icon)",
                seed_data.TOPICS,
            )
            if conn.execute("SELECT COUNT(*) FROM historical_periods").fetchone()[0] == 0:
                conn.executemany(
                    "INSERT INTO historical_periods (name, start_year, end_year, description, significance) "
                    "VALUES (:name, :start_year, :end_year, :description, :significance)",
                    seed_data.PERIODS,
                )
            if conn.execute("SELECT COUNT(*) FROM historical_facts").fetchone()[0] == 0:
                city_ids = {r["name"]: r["id"] for r in conn.execute("SELECT id, name FROM historical_cities")}
                topic_ids = {r["name"]: r["id"] for r in conn.execute("SELECT id, name FROM historical_topics")}
                for fact in seed_data.FACTS:
                    conn.execute(
                        "INSERT INTO historical_facts (title, content, event_date, event_year, city_id, "
                        "topic_id, source_name, importance, is_verified, image_url) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?)",
                        (
                            fact["title"], fact["content"], fact["event_date"], fact["event_year"],
                            city_ids.get(fact["city"]), topic_ids.get(fact["topic"]),
                            fact["source_name"], fact["importance"], fact.get("image_url"),
                        ),
                    )
        logger.info("Seeded reference data")

    # ── Reference data ─────────────────────────────────────────────────────

    def list_cities(self) -> list[HistoricalCity]:
        rows = self._conn.execute("SELECT * FROM historical_cities ORDER BY name ASC").fetchall()
        return [HistoricalCity.model_validate(dict(r)) for r in rows]

    def get_city(self, city_id: int) -> HistoricalCity | None:
        row = self._conn.execute("SELECT * FROM historical_cities WHERE id = ?", (city_id,)).fetchone()
        return HistoricalCity.model_validate(dict(row)) if row else None

    def get_city_id(self, name: str) -> int | None:
        row = self._conn.execute(
            "SELECT id FROM historical_cities WHERE LOWER(name) = LOWER(?)", (name,)
        ).fetchone()
        return row["id"] if row else None

    def list_topics(self) -> list[HistoricalTopic]:
        rows = self._conn.execute("SELECT * FROM historical_topics ORDER BY name ASC").fetchall()
        return [HistoricalTopic.model_validate(dict(r)) for r in rows]

    def get_topic_by_name(self, name: str) -> HistoricalTopic | None:
        """Exact, case-insensitive lookup in the topic table."""
        row = self._conn.execute(
            "SELECT * FROM historical_topics WHERE LOWER(name) = LOWER(?)", (name.strip(),)
        ).fetchone()
        return HistoricalTopic.model_validate(dict(row)) if row else None

    def list_periods(self) -> list[HistoricalPeriod]:
        rows = self._conn.execute("SELECT * FROM historical_periods ORDER BY start_year ASC").fetchall()
        return [HistoricalPeriod.model_validate(dict(r)) for r in rows]

    # ── Facts ──────────────────────────────────────────────────────────────

    def add_fact(self, title: str, content: str, **fields) -> int:
        """Insert a fact; ``fields`` are optional column values."""
        columns = ["title", "content", *fields]
        placeholders = ", ".join("?" for _ in columns)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO historical_facts ({', '.join(columns)}) VALUES ({placeholders})",
                (title, content, *fields.values()),
            )
        return cursor.lastrowid

    def list_facts(
        self,
        city_id: Optional[int] = None,
        topic_id: Optional[int] = None,
        year: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
    ) -> list[HistoricalFact]:
        """Filtered fact listing, newest event first."""
        query = _FACT_SELECT + " WHERE 1=1"
        params: list = []
        if city_id is not None:
            query += " AND hf.city_id = ?"
            params.append(city_id)
        if topic_id is not None:
            query += " AND hf.topic_id = ?"
            params.append(topic_id)
        if year is not None:
            query += " AND hf.event_year = ?"
            params.append(year)
        if search:
            query += " AND (LOWER(hf.title) LIKE ? ESCAPE '\\' OR LOWER(hf.content) LIKE ? ESCAPE '\\')"
            params.extend([_like(search), _like(search)])
        query += " ORDER BY hf.event_year DESC, hf.importance DESC LIMIT ?"
        params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        return [HistoricalFact.model_validate(dict(r)) for r in rows]

    def facts_for_topic(self, topic: str, limit: int = 10) -> list[HistoricalFact]:
        """Facts about a researched topic string, most important first.

        An exact topic-table match filters by that topic id; otherwise the
        string is matched as a substring of topic name, city name, title or
        content.
        """
        exact = self.get_topic_by_name(topic)
        if exact is not None:
            where = "hf.topic_id = ?"
            params: list = [exact.id]
        else:
            pattern = _like(topic)
            where = (
                "LOWER(ht.name) LIKE ? ESCAPE '\\' OR LOWER(hc.name) LIKE ? ESCAPE '\\' "
                "OR LOWER(hf.title) LIKE ? ESCAPE '\\' OR LOWER(hf.content) LIKE ? ESCAPE '\\'"
            )
            params = [pattern] * 4

        rows = self._conn.execute(
            _FACT_SELECT + f" WHERE {where} "
            "ORDER BY hf.importance DESC, hf.event_year DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [HistoricalFact.model_validate(dict(r)) for r in rows]

    def search_verified_facts(self, text: str, limit: int = 10) -> list[HistoricalFact]:
        """Verified facts whose title, content, city or topic contains *text*."""
        pattern = _like(text)
        rows = self._conn.execute(
            _FACT_SELECT
            + " WHERE hf.is_verified = 1 AND ("
            "LOWER(hf.title) LIKE ? ESCAPE '\\' OR LOWER(hf.content) LIKE ? ESCAPE '\\' "
            "OR LOWER(hc.name) LIKE ? ESCAPE '\\' OR LOWER(ht.name) LIKE ? ESCAPE '\\') "
            "ORDER BY hf.importance DESC, hf.event_year DESC LIMIT ?",
            (pattern, pattern, pattern, pattern, limit),
        ).fetchall()
        return [HistoricalFact.model_validate(dict(r)) for r in rows]

    # ── Researched topics & media ──────────────────────────────────────────

    def create_topic(self, topic: str, keywords: list[str], user_id: str = "default") -> int:
        """Insert a researched topic and return its id."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO topics_researched (topic, keywords, user_id, researched_at) "
                "VALUES (?, ?, ?, ?)",
                (topic, json.dumps(keywords), user_id, _now()),
            )
        logger.info("Stored researched topic id=%d topic=%r", cursor.lastrowid, topic)
        return cursor.lastrowid

    def get_researched_topic(self, topic_id: int) -> ResearchedTopic | None:
        row = self._conn.execute("SELECT * FROM topics_researched WHERE id = ?", (topic_id,)).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["keywords"] = json.loads(data["keywords"] or "[]")
        return ResearchedTopic.model_validate(data)

    def list_researched_topics(self) -> list[ResearchedTopic]:
        rows = self._conn.execute("SELECT id FROM topics_researched ORDER BY id ASC").fetchall()
        return [self.get_researched_topic(r["id"]) for r in rows]

    def link_media(
        self,
        topic_id: int,
        media_path: str,
        title: str,
        source: str,
        media_type: str = "image",
    ) -> int:
        """Attach a downloaded media file to a researched topic."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO topic_media (topic_id, media_path, media_type, title, source, collected_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (topic_id, media_path, media_type, title, source, _now()),
            )
        return cursor.lastrowid

    def list_topic_media(self, topic_id: int) -> list[TopicMedia]:
        rows = self._conn.execute(
            "SELECT * FROM topic_media WHERE topic_id = ? ORDER BY id ASC", (topic_id,)
        ).fetchall()
        return [TopicMedia.model_validate(dict(r)) for r in rows]

    def mark_presentation_generated(self, topic_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE topics_researched SET presentation_generated = 1 WHERE id = ?", (topic_id,)
            )

    # ── Presentations ──────────────────────────────────────────────────────

    def add_presentation(
        self,
        topic_id: int,
        title: str,
        content: str,
        html_path: str,
        fragments: Optional[PageFragments] = None,
    ) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO presentations (topic_id, title, content, html_path, fragments, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    topic_id, title, content, html_path,
                    fragments.model_dump_json() if fragments else None,
                    _now(),
                ),
            )
        return cursor.lastrowid

    @staticmethod
    def _presentation(row: sqlite3.Row) -> Presentation:
        data = dict(row)
        raw = data.pop("fragments", None)
        presentation = Presentation.model_validate(data)
        if raw:
            try:
                presentation.fragments = PageFragments.model_validate_json(raw)
            except ValueError as exc:
                logger.warning("Ignoring corrupt fragments on presentation id=%d: %s", data["id"], exc)
        return presentation

    def find_presentations(self, terms: list[str]) -> list[Presentation]:
        """Presentations whose researched topic contains any of *terms*, newest first."""
        if not terms:
            return []
        where = " OR ".join("LOWER(t.topic) LIKE ? ESCAPE '\\'" for _ in terms)
        rows = self._conn.execute(
            _PRESENTATION_SELECT + f" WHERE {where} ORDER BY p.created_at DESC, p.id DESC",
            [_like(t) for t in terms],
        ).fetchall()
        return [self._presentation(r) for r in rows]

    def latest_presentation(self, topic: str) -> Presentation | None:
        """Newest presentation whose researched topic contains *topic*."""
        matches = self.find_presentations([topic])
        return matches[0] if matches else None

    def has_presentation(self, topic: str) -> bool:
        """Whether a researched topic named exactly *topic* has a presentation."""
        row = self._conn.execute(
            "SELECT p.id FROM presentations p JOIN topics_researched t ON p.topic_id = t.id "
            "WHERE LOWER(t.topic) = LOWER(?) LIMIT 1",
            (topic,),
        ).fetchone()
        return row is not None

    # ── Consolidated pages ─────────────────────────────────────────────────

    def add_consolidated_page(
        self, main_topic: str, display_name: str, html_path: str, presentation_count: int
    ) -> int:
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO consolidated_pages (main_topic, display_name, html_path, "
                "presentation_count, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (main_topic, display_name, html_path, presentation_count, now, now),
            )
        return cursor.lastrowid

    def list_consolidated_pages(self, main_topic: Optional[str] = None) -> list[ConsolidatedPage]:
        query = "SELECT * FROM consolidated_pages"
        params: tuple = ()
        if main_topic is not None:
            query += " WHERE main_topic = ?"
            params = (main_topic,)
        rows = self._conn.execute(query + " ORDER BY created_at DESC, id DESC", params).fetchall()
        return [ConsolidatedPage.model_validate(dict(r)) for r in rows]

    # ── Chat ───────────────────────────────────────────────────────────────

    def get_or_create_conversation(
        self, session_id: str, user_ip: str = "web_user"
    ) -> tuple[Conversation, bool]:
        """Return the conversation for *session_id* and whether it was just created."""
        row = self._conn.execute(
            "SELECT * FROM chat_conversations WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is not None:
            return Conversation.model_validate(dict(row)), False

        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO chat_conversations (session_id, user_ip, started_at) VALUES (?, ?, ?)",
                (session_id, user_ip, _now()),
            )
        row = self._conn.execute(
            "SELECT * FROM chat_conversations WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        return Conversation.model_validate(dict(row)), True

    def add_chat_message(self, conversation_id: int, role: str, content: str) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO chat_messages (conversation_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (conversation_id, role, content, _now()),
            )
        return cursor.lastrowid

    def recent_messages(self, conversation_id: int, limit: int = 6) -> list[ChatMessage]:
        """The last *limit* messages of a conversation, oldest first."""
        rows = self._conn.execute(
            "SELECT role, content FROM chat_messages WHERE conversation_id = ? "
            "ORDER BY id DESC LIMIT ?",
            (conversation_id, limit),
        ).fetchall()
        return [ChatMessage.model_validate(dict(r)) for r in reversed(rows)]

    def add_insight(
        self,
        insight: str,
        conversation_id: Optional[int] = None,
        city_id: Optional[int] = None,
        topic_id: Optional[int] = None,
    ) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO learned_insights (conversation_id, insight, city_id, topic_id, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (conversation_id, insight, city_id, topic_id, _now()),
            )
        logger.info("New insight learned id=%d", cursor.lastrowid)
        return cursor.lastrowid

    # ── Contributions ──────────────────────────────────────────────────────

    def add_contribution(
        self,
        topic: str,
        fact_title: str,
        fact_content: str,
        source: Optional[str] = None,
        contributor_name: Optional[str] = None,
        contributor_email: Optional[str] = None,
    ) -> int:
        """Queue a public contribution for review."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO public_contributions (topic, fact_title, fact_content, source, "
                "contributor_name, contributor_email, status, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)",
                (
                    topic, fact_title, fact_content,
                    source or "Public contribution",
                    contributor_name or "Anonymous",
                    contributor_email, _now(),
                ),
            )
        return cursor.lastrowid

    def list_contributions(self, status: str = "pending") -> list[Contribution]:
        rows = self._conn.execute(
            "SELECT * FROM public_contributions WHERE status = ? ORDER BY id ASC", (status,)
        ).fetchall()
        return [Contribution.model_validate(dict(r)) for r in rows]

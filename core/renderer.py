"""Presentation page rendering.

A presentation is a self-contained HTML page for one researched topic: its
downloaded media and fact images as a gallery, followed by the matching
historical facts. The page goes to ``<presentations_dir>/<slug>-<id>.html``
and a Presentation row keeps both the HTML and the structured sections
(``PageFragments``) so consolidation never has to re-parse markup.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, PackageLoader, select_autoescape

from core.errors import TopicNotFoundError
from core.extractor import slugify
from core.models import (
    FactView,
    GalleryItem,
    HistoricalFact,
    PageFragments,
    RenderedPage,
    TopicMedia,
)

if TYPE_CHECKING:
    from config.settings import Settings
    from core.database import HistoryStore

logger = logging.getLogger(__name__)

#: Jinja environment for generated pages; values are HTML-escaped.
TEMPLATES = Environment(
    loader=PackageLoader("core", "templates"),
    autoescape=select_autoescape(),
)

#: Public URL prefix under which generated pages are served.
PAGE_URL_PREFIX = "/presentations"

PAGE_SUBTITLE = "A Visual Journey Through Southeast Texas History"


def build_fragments(
    topic: str,
    media: list[TopicMedia],
    facts: list[HistoricalFact],
) -> PageFragments:
    """Assemble the page sections: collected media first, then fact images."""
    gallery = [
        GalleryItem(
            src=m.media_path,
            title=m.title or topic,
            source=m.source or "",
            type=m.media_type,
        )
        for m in media
    ]
    gallery.extend(
        GalleryItem(src=f.image_url, title=f.title, source=f.source_name or "")
        for f in facts
        if f.image_url
    )
    return PageFragments(
        title=topic,
        subtitle=PAGE_SUBTITLE,
        gallery=gallery,
        facts=[FactView.model_validate(f.model_dump()) for f in facts],
    )


def render_presentation(page: PageFragments) -> str:
    """Render the HTML document for *page*."""
    return TEMPLATES.get_template("presentation.html").render(
        page=page,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


class PageRenderer:
    """Renders, writes and records presentations for researched topics."""

    def __init__(self, store: HistoryStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self.output_dir: Path = settings.presentations_dir

    def render(self, topic_id: int) -> RenderedPage:
        """Generate the page for *topic_id* and record a new Presentation.

        Re-rendering the same id overwrites its file but still adds a row.

        Raises:
            TopicNotFoundError: If no researched topic has this id.
        """
        topic = self.store.get_researched_topic(topic_id)
        if topic is None:
            raise TopicNotFoundError(topic_id)

        media = self.store.list_topic_media(topic_id)
        facts = self.store.facts_for_topic(topic.topic, limit=self.settings.page_fact_limit)
        page = build_fragments(topic.topic, media, facts)
        html = render_presentation(page)

        filename = f"{slugify(topic.topic) or 'topic'}-{topic_id}.html"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.output_dir / filename
        file_path.write_text(html, encoding="utf-8")
        logger.info("Presentation generated: %s", filename)

        presentation_id = self.store.add_presentation(
            topic_id, topic.topic, html, str(file_path), fragments=page
        )
        try:
            self.store.mark_presentation_generated(topic_id)
        except sqlite3.Error as exc:
            logger.warning("Failed to flag topic id=%d as rendered: %s", topic_id, exc)

        return RenderedPage(
            presentation_id=presentation_id,
            filename=filename,
            file_path=str(file_path),
            url=f"{PAGE_URL_PREFIX}/{filename}",
        )

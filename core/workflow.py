"""
Research workflow: query → topic → media → presentation page.

Flow
────
1. extract_topic(query) / extract_keywords(query)
     → no topic ends the run with ``None``; nothing is stored or fetched
2. MediaCollector.research_and_collect(topic, keywords)
     → stores the researched topic (or reuses an existing id) and its media
3. PageRenderer.render(topic_id)
     → writes the page and records the Presentation

Steps run in order with no rollback: if rendering fails, the topic and
media rows written in step 2 stay behind.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Optional

from core.errors import TopicNotFoundError
from core.extractor import extract_keywords, extract_topic
from core.models import WorkflowResult

if TYPE_CHECKING:
    from core.database import HistoryStore
    from core.media import MediaCollector
    from core.renderer import PageRenderer

logger = logging.getLogger(__name__)


class ResearchWorkflow:
    """Runs one research request end to end."""

    def __init__(
        self,
        store: HistoryStore,
        collector: MediaCollector,
        renderer: PageRenderer,
    ) -> None:
        self.store = store
        self.collector = collector
        self.renderer = renderer

    def run(self, query: str, existing_topic_id: Optional[int] = None) -> Optional[WorkflowResult]:
        """Research *query* and build its presentation page.

        Args:
            query: Free-text request, e.g. "Tell me about Spindletop".
            existing_topic_id: Append media to this researched topic instead
                of storing a new one.

        Returns:
            The page location and counts, or ``None`` when no topic could be
            extracted from *query*.
        """
        topic = extract_topic(query)
        if not topic:
            logger.info("No topic found in query %r", query)
            return None

        keywords = extract_keywords(query)
        logger.info("Researching %r (keywords=%s)", topic, keywords)

        collection = self.collector.research_and_collect(topic, keywords, existing_topic_id)
        page = self.renderer.render(collection.topic_id)

        logger.info(
            "Workflow complete for %r: %d media, page %s",
            topic, collection.media_count, page.url,
        )
        return WorkflowResult(
            topic_id=collection.topic_id,
            topic=collection.topic,
            media_count=collection.media_count,
            page_url=page.url,
            page_path=page.file_path,
        )

    def enhance(self, topic_id: int, topic_name: str, query: str) -> Optional[WorkflowResult]:
        """Add media for *query* to an existing topic and re-render its page.

        Raises:
            TopicNotFoundError: If *topic_id* does not exist.
        """
        if self.store.get_researched_topic(topic_id) is None:
            raise TopicNotFoundError(topic_id)
        contextual = f"{query} (related to {topic_name} in Southeast Texas history)"
        return self.run(contextual, existing_topic_id=topic_id)

    def populate_all(self, delay: float = 2.0) -> dict[str, str]:
        """Generate a page for every reference topic that has none yet.

        Returns a status per topic name: ``skipped`` (already has a page),
        ``success``, ``failed`` (no topic extracted) or ``error``.
        """
        statuses: dict[str, str] = {}
        topics = self.store.list_topics()
        for index, topic in enumerate(topics):
            if self.store.has_presentation(topic.name):
                statuses[topic.name] = "skipped"
                continue

            try:
                result = self.run(f"Tell me about {topic.name} in Southeast Texas history")
            except Exception:
                logger.exception("Failed to populate topic %r", topic.name)
                statuses[topic.name] = "error"
                continue

            statuses[topic.name] = "success" if result else "failed"
            if delay > 0 and index < len(topics) - 1:
                time.sleep(delay)

        logger.info(
            "Topic population complete: %d generated",
            sum(1 for s in statuses.values() if s == "success"),
        )
        return statuses

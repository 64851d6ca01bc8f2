"""Category consolidation of presentation pages.

Each category in :data:`CATEGORIES` collects every presentation whose
researched topic mentions the category, one of its subtopics or a related
place, and renders them as one tabbed page (one tab per presentation,
newest first). Tabs are built from the structured sections stored at render
time; rows stored without them fall back to pattern extraction of their
HTML.

:class:`ConsolidationScheduler` defers a consolidation after research
requests. A new trigger for a category replaces the pending one, so a burst
of requests produces a single run.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from core.extractor import slugify
from core.models import ConsolidationResult, PageFragments, Presentation
from core.renderer import PAGE_URL_PREFIX, TEMPLATES

if TYPE_CHECKING:
    from config.settings import Settings
    from core.database import HistoryStore

logger = logging.getLogger(__name__)


# ── Category table ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Category:
    """Display metadata and matching terms for one consolidated page."""

    display_name: str
    icon: str
    description: str
    subtopics: tuple[str, ...] = ()
    related_topics: tuple[str, ...] = ()


CATEGORIES: dict[str, Category] = {
    "Oil & Energy": Category(
        display_name="Oil & Energy in Southeast Texas",
        icon="⚡",
        description="The petroleum industry that transformed Southeast Texas from rural to industrial",
        subtopics=("Spindletop", "Oil drilling methods", "Refineries", "Major oil companies"),
        related_topics=("Port Arthur", "Beaumont"),
    ),
    "Lumber Industry": Category(
        display_name="Lumber Industry in Southeast Texas",
        icon="🌲",
        description="The sawmill and timber era that built the region from 1880-1930",
        subtopics=("Sawmills", "Logging techniques", "Major lumber companies", "Forest management"),
        related_topics=("Orange", "Vidor"),
    ),
    "Shipbuilding": Category(
        display_name="Shipbuilding in Southeast Texas",
        icon="🚢",
        description="Naval and commercial shipbuilding, especially during WWII",
        subtopics=("WWII shipyards", "Construction techniques", "Major shipbuilding companies", "Types of vessels"),
        related_topics=("Orange", "Port Arthur"),
    ),
}

#: Topic keyword → category, checked in order after a research request.
TOPIC_CATEGORY_KEYWORDS: dict[str, str] = {
    "spindletop": "Oil & Energy",
    "oil": "Oil & Energy",
    "drilling": "Oil & Energy",
    "refinery": "Oil & Energy",
    "lumber": "Lumber Industry",
    "sawmill": "Lumber Industry",
    "shipbuilding": "Shipbuilding",
    "shipyard": "Shipbuilding",
}


def category_for_topic(topic: str) -> Optional[str]:
    """Return the category a researched topic belongs to, if any.

    Examples:
        >>> category_for_topic("Spindletop gusher")
        'Oil & Energy'
        >>> category_for_topic("Cajun music") is None
        True
    """
    lowered = topic.lower()
    for keyword, category in TOPIC_CATEGORY_KEYWORDS.items():
        if keyword in lowered:
            return category
    return None


# ── Fallback extraction ────────────────────────────────────────────────────

_TITLE_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_HERO_RE = re.compile(r'<div class="hero">(.*?)</div>', re.DOTALL)
_GALLERY_RE = re.compile(r'<div class="gallery">(.*?)</div>', re.DOTALL)
_CONTENT_RE = re.compile(r'<div class="content">(.*?)<div class="timestamp">', re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_LABEL_PREFIX_RE = re.compile(r"^[^a-z0-9]+", re.IGNORECASE)


@dataclass
class LegacySections:
    """Raw HTML sections pulled out of a stored page."""

    title: str = "Untitled"
    hero: str = ""
    gallery: str = ""
    content: str = ""


def extract_sections(html: str) -> LegacySections:
    """Pull title, hero, gallery and facts out of presentation HTML.

    Each section is matched on its own; one that can't be found stays empty.
    """
    sections = LegacySections()
    if match := _TITLE_RE.search(html):
        sections.title = _TAG_RE.sub("", match.group(1)).strip() or sections.title
    if match := _HERO_RE.search(html):
        sections.hero = match.group(1).strip()
    if match := _GALLERY_RE.search(html):
        sections.gallery = match.group(1).strip()
    if match := _CONTENT_RE.search(html):
        sections.content = match.group(1).strip()
    return sections


# ── Consolidation ──────────────────────────────────────────────────────────


@dataclass
class Tab:
    id: str
    label: str
    page: Optional[PageFragments] = None
    legacy: Optional[LegacySections] = None


def tab_label(title: str) -> str:
    """Strip leading emoji and punctuation, cap at 30 characters."""
    return _LABEL_PREFIX_RE.sub("", title)[:30]


def build_tabs(presentations: list[Presentation]) -> list[Tab]:
    tabs: list[Tab] = []
    for index, presentation in enumerate(presentations):
        tab_id = f"tab-{index}"
        if presentation.fragments is not None:
            page = presentation.fragments
            tabs.append(Tab(id=tab_id, label=tab_label(page.title), page=page))
        else:
            legacy = extract_sections(presentation.content or "")
            tabs.append(Tab(id=tab_id, label=tab_label(legacy.title), legacy=legacy))
    return tabs


def render_consolidated(category: Category, presentations: list[Presentation]) -> str:
    return TEMPLATES.get_template("consolidated.html").render(
        category=category,
        tabs=build_tabs(presentations),
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


class Consolidator:
    """Builds tabbed category pages out of stored presentations."""

    def __init__(self, store: HistoryStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self.output_dir: Path = settings.presentations_dir

    def find_related_presentations(self, category: str) -> list[Presentation]:
        """Presentations matching *category*, its subtopics or related places."""
        info = CATEGORIES.get(category)
        if info is None:
            return []
        terms = [category, *info.related_topics, *info.subtopics]
        return self.store.find_presentations(terms)

    def consolidate(self, category: str) -> Optional[ConsolidationResult]:
        """Write the consolidated page for *category*.

        Returns ``None`` (and writes nothing) for an unknown category, when no
        presentation matches, or when the file can't be written. A failed
        database insert is logged; the written page is still returned.
        """
        info = CATEGORIES.get(category)
        if info is None:
            logger.warning("Unknown consolidation category %r", category)
            return None

        presentations = self.find_related_presentations(category)
        logger.info("Found %d related presentations for %s", len(presentations), category)
        if not presentations:
            return None

        html = render_consolidated(info, presentations)
        filename = f"{slugify(category)}-consolidated-{time.time_ns() // 1_000_000}.html"
        file_path = self.output_dir / filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_text(html, encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save consolidated page %s: %s", filename, exc)
            return None

        try:
            self.store.add_consolidated_page(
                category, info.display_name, str(file_path), len(presentations)
            )
        except sqlite3.Error as exc:
            logger.warning("Consolidated page %s written but not recorded: %s", filename, exc)

        logger.info("Consolidated %s into %s", category, filename)
        return ConsolidationResult(
            category=category,
            filename=filename,
            file_path=str(file_path),
            url=f"{PAGE_URL_PREFIX}/{filename}",
            presentation_count=len(presentations),
        )

    def consolidate_all(self, delay: Optional[float] = None) -> list[ConsolidationResult]:
        """Consolidate every category in turn, pausing *delay* seconds between them."""
        if delay is None:
            delay = self.settings.consolidate_all_delay

        results: list[ConsolidationResult] = []
        for index, category in enumerate(CATEGORIES):
            if index and delay > 0:
                time.sleep(delay)
            result = self.consolidate(category)
            if result is not None:
                results.append(result)

        logger.info("Page consolidation complete: %d pages created", len(results))
        return results


# ── Deferred triggers ──────────────────────────────────────────────────────


def _on_job_error(event) -> None:
    """Log a consolidation job that raised."""
    exc = event.exception
    logger.error(
        "Deferred consolidation failed: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


class ConsolidationScheduler:
    """Runs ``runner(category)`` after *delay* seconds, one pending run per category.

    Each category is a one-shot APScheduler job whose id is the category
    name. Scheduling a category that already has a pending job replaces it
    and starts the wait again.
    """

    def __init__(
        self,
        runner: Callable[[str], object],
        delay: float = 5.0,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.runner = runner
        self.delay = delay
        self._scheduler = scheduler or BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )
        self._scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Consolidation scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Consolidation scheduler stopped")

    def schedule(self, category: str) -> Job:
        self.start()
        replacing = self._scheduler.get_job(category) is not None
        job = self._scheduler.add_job(
            self.runner,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=self.delay),
            args=[category],
            id=category,
            name=f"Consolidate {category}",
            replace_existing=True,
        )
        if replacing:
            logger.info("Replaced pending consolidation for %s", category)
        logger.info("Scheduled consolidation for %s in %.1fs", category, self.delay)
        return job

    def cancel(self, category: str) -> bool:
        try:
            self._scheduler.remove_job(category)
        except JobLookupError:
            return False
        return True

    def cancel_all(self) -> None:
        self._scheduler.remove_all_jobs()

    def pending(self) -> list[str]:
        return sorted(job.id for job in self._scheduler.get_jobs())

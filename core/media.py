"""Media collection from the Library of Congress JSON API.

Flow
────
1. search_archive(query)
     → three independent searches (pictures / audio / film); a failing
       endpoint contributes nothing instead of aborting the others
2. download(url, stem, type)
     → one binary GET per accepted item; non-200 or empty bodies are skipped
3. research_and_collect(topic, keywords)
     → stores (or reuses) the researched topic and links every downloaded file

Every item keeps its archive attribution in ``source``. There is no retry,
rate limiting or deduplication: collecting the same topic twice downloads
new files and links new rows.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

import httpx
from pydantic import ValidationError

from core.errors import TopicNotFoundError
from core.extractor import slugify
from core.models import CollectionResult, MediaCandidate, MediaItem

if TYPE_CHECKING:
    from config.settings import Settings
    from core.database import HistoryStore

logger = logging.getLogger(__name__)

#: Appended to every archive query to keep results regional.
QUERY_SUFFIX = "Texas history"

#: Search path and attribution per media type.
_ENDPOINTS: dict[str, tuple[str, str]] = {
    "image": ("/pictures/search/", "Library of Congress - Images"),
    "audio": ("/audio/", "Library of Congress - Audio"),
    "video": ("/film/", "Library of Congress - Video"),
}

#: File extension written for each media type; payloads are not sniffed.
EXTENSIONS: dict[str, str] = {"image": "jpg", "audio": "mp3", "video": "mp4"}

_AUDIO_MIME = ("audio", "mp3", "wav", "aiff", "flac")
_AUDIO_EXT = re.compile(r"\.(mp3|wav|aiff|flac|aac|m4a|ogg)$", re.IGNORECASE)
_VIDEO_MIME = ("video", "mp4", "mov", "avi", "wmv", "flv")
_VIDEO_EXT = re.compile(r"\.(mp4|mov|avi|wmv|flv|mkv|m4v)$", re.IGNORECASE)

#: Public URL prefix under which downloaded files are served.
MEDIA_URL_PREFIX = "/images/historical"


def _absolute(url: str) -> str:
    """The archive often returns protocol-relative URLs."""
    return f"https:{url}" if url.startswith("//") else url


def select_resource(
    resources: list[dict],
    mime_markers: tuple[str, ...],
    extension: re.Pattern[str],
) -> Optional[str]:
    """Pick the playable URL out of an item's ``resources`` list.

    The first resource whose ``mime_type`` mentions one of *mime_markers*,
    or whose URL ends in a matching extension, wins. Returns ``None`` when
    nothing in the list looks like the wanted media family.
    """
    for resource in resources:
        url = resource.get("url") or ""
        if not url:
            continue
        mime = (resource.get("mime_type") or "").lower()
        if any(marker in mime for marker in mime_markers) or extension.search(url):
            return _absolute(url)
    return None


def _image_url(item: dict) -> Optional[str]:
    full = (item.get("image") or {}).get("full")
    return _absolute(full) if full else None


class MediaCollector:
    """Searches the archive, downloads hits and records them for a topic.

    The ``httpx.Client`` may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise one is created and closed with the
    collector.
    """

    def __init__(
        self,
        store: HistoryStore,
        settings: Settings,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.media_dir: Path = settings.images_dir
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=settings.download_timeout,
            follow_redirects=True,
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> MediaCollector:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Search ─────────────────────────────────────────────────────────────

    def _search(self, media_type: str, query: str) -> list[dict]:
        """Return the raw ``results`` list for one endpoint, or ``[]`` on any failure."""
        path, _ = _ENDPOINTS[media_type]
        url = self.settings.loc_base_url.rstrip("/") + path
        try:
            response = self.client.get(url, params={"q": query, "fo": "json"})
            response.raise_for_status()
            results = response.json().get("results") or []
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.error("Archive %s search failed for %r: %s", media_type, query, exc)
            return []
        return [r for r in results if isinstance(r, dict)]

    def _candidates(
        self,
        media_type: str,
        query: str,
        limit: int,
        url_of: Callable[[dict], Optional[str]],
    ) -> list[MediaCandidate]:
        """Turn raw hits into candidates; a malformed hit is logged and skipped."""
        source = _ENDPOINTS[media_type][1]
        candidates: list[MediaCandidate] = []
        for item in self._search(media_type, query)[:limit]:
            try:
                url = url_of(item)
                if not url:
                    continue
                candidates.append(MediaCandidate(
                    title=str(item.get("title") or query),
                    url=url,
                    source=source,
                    type=media_type,
                    reproduction_number=item.get("reproduction_number"),
                ))
            except (AttributeError, TypeError, ValidationError) as exc:
                logger.warning("Skipping malformed %s result for %r: %s", media_type, query, exc)
        return candidates

    def search_images(self, query: str, limit: int) -> list[MediaCandidate]:
        return self._candidates("image", query, limit, _image_url)

    def _search_resources(
        self,
        media_type: str,
        query: str,
        limit: int,
        mime_markers: tuple[str, ...],
        extension: re.Pattern[str],
    ) -> list[MediaCandidate]:
        return self._candidates(
            media_type,
            query,
            limit,
            lambda item: select_resource(item.get("resources") or [], mime_markers, extension),
        )

    def search_audio(self, query: str, limit: int) -> list[MediaCandidate]:
        return self._search_resources("audio", query, limit, _AUDIO_MIME, _AUDIO_EXT)

    def search_video(self, query: str, limit: int) -> list[MediaCandidate]:
        return self._search_resources("video", query, limit, _VIDEO_MIME, _VIDEO_EXT)

    def search_archive(self, query: str, max_results: Optional[int] = None) -> list[MediaCandidate]:
        """Search all three endpoints; images come first in the combined list.

        Images may use the full *max_results*; audio and video each get half.
        """
        if max_results is None:
            max_results = self.settings.max_media_results
        half = max_results // 2

        candidates = [
            *self.search_images(query, max_results),
            *self.search_audio(query, half),
            *self.search_video(query, half),
        ]
        return candidates[:max_results]

    # ── Download ───────────────────────────────────────────────────────────

    def download(self, url: str, stem: str, media_type: str) -> Optional[Path]:
        """Fetch *url* into the media directory as ``<stem>.<ext>``.

        Returns the written path, or ``None`` when the request fails, times
        out, answers with anything but 200, or returns an empty body.
        """
        filename = f"{stem}.{EXTENSIONS[media_type]}"
        try:
            response = self.client.get(url, timeout=self.settings.download_timeout)
        except httpx.TimeoutException:
            logger.error("Failed to download %s: request timed out", filename)
            return None
        except httpx.HTTPError as exc:
            logger.error("Failed to download %s: %s", filename, exc)
            return None

        if response.status_code != 200:
            logger.error("Failed to download %s: HTTP %d", filename, response.status_code)
            return None
        if not response.content:
            logger.error("Failed to download %s: empty response", filename)
            return None

        path = self.media_dir / filename
        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(response.content)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            return None

        logger.info("Downloaded %s", filename)
        return path

    # ── Collection ─────────────────────────────────────────────────────────

    def collect_media(self, topic: str, keywords: list[str]) -> list[MediaItem]:
        """Search for *topic* and download every accepted hit."""
        query = " ".join([topic, *keywords, QUERY_SUFFIX])
        logger.info("Collecting media for %r", topic)
        candidates = self.search_archive(query)

        downloaded: list[MediaItem] = []
        for candidate in candidates:
            stem = "-".join([
                slugify(topic),
                slugify(candidate.title)[:30],
                str(time.time_ns() // 1_000_000),
            ])
            path = self.download(candidate.url, stem, candidate.type)
            if path is None:
                continue
            downloaded.append(MediaItem(
                path=f"{MEDIA_URL_PREFIX}/{path.name}",
                title=candidate.title,
                source=candidate.source,
                type=candidate.type,
            ))

        logger.info(
            "Collected %d media items for %r (%d found)",
            len(downloaded), topic, len(candidates),
        )
        return downloaded

    def research_and_collect(
        self,
        topic: str,
        keywords: list[str],
        existing_topic_id: Optional[int] = None,
        user_id: str = "default",
    ) -> CollectionResult:
        """Store the topic (unless enhancing *existing_topic_id*), collect and link media.

        The topic insert is not guarded: a storage error here propagates and
        ends the workflow.

        Raises:
            TopicNotFoundError: If *existing_topic_id* has no row. Nothing is
                downloaded in that case.
        """
        if existing_topic_id is None:
            topic_id = self.store.create_topic(topic, keywords, user_id)
        else:
            if self.store.get_researched_topic(existing_topic_id) is None:
                raise TopicNotFoundError(existing_topic_id)
            topic_id = existing_topic_id
            logger.info("Enhancing existing topic id=%d", topic_id)

        media = self.collect_media(topic, keywords)
        for item in media:
            self.store.link_media(topic_id, item.path, item.title, item.source, item.type)

        return CollectionResult(
            topic_id=topic_id,
            topic=topic,
            media_count=len(media),
            media=media,
        )

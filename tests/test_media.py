"""Tests for core/media.py — archive search and downloads over a mock transport."""

from __future__ import annotations

import httpx
import pytest

from core.errors import TopicNotFoundError
from core.media import MediaCollector, select_resource, _AUDIO_EXT, _AUDIO_MIME


# ── Fake archive ───────────────────────────────────────────────────────────────


IMAGE_RESULTS = {
    "results": [
        {"title": "Lucas Gusher", "image": {"full": "//tile.loc.gov/gusher.jpg"}},
        {"title": "Derricks at Spindletop", "image": {"full": "https://tile.loc.gov/derricks.jpg"}},
        {"title": "No image here"},
    ]
}
AUDIO_RESULTS = {
    "results": [
        {
            "title": "Oral history",
            "resources": [
                {"url": "https://tile.loc.gov/notes.txt", "mime_type": "text/plain"},
                {"url": "https://tile.loc.gov/oral.mp3"},
            ],
        }
    ]
}
VIDEO_RESULTS = {
    "results": [
        {"title": "Newsreel", "resources": [{"url": "https://tile.loc.gov/reel", "mime_type": "video/mp4"}]}
    ]
}


def archive_handler(fail: set[str] = frozenset(), missing: set[str] = frozenset()):
    """Build a MockTransport handler serving search JSON and media bytes.

    *fail* names search paths that answer 500; *missing* names file URLs that 404.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "www.loc.gov":
            if path in fail:
                return httpx.Response(500)
            payload = {
                "/pictures/search/": IMAGE_RESULTS,
                "/audio/": AUDIO_RESULTS,
                "/film/": VIDEO_RESULTS,
            }[path]
            assert request.url.params["fo"] == "json"
            return httpx.Response(200, json=payload)
        if str(request.url) in missing:
            return httpx.Response(404)
        return httpx.Response(200, content=b"media-bytes")

    return handler


@pytest.fixture
def make_collector(store, settings):
    collectors = []

    def factory(**kwargs) -> MediaCollector:
        client = httpx.Client(transport=httpx.MockTransport(archive_handler(**kwargs)))
        collector = MediaCollector(store, settings, client=client)
        collectors.append(client)
        return collector

    yield factory
    for client in collectors:
        client.close()


# ── Resource selection ─────────────────────────────────────────────────────────


class TestSelectResource:
    def test_mime_type_match(self):
        resources = [{"url": "https://x/a", "mime_type": "audio/mpeg"}]
        assert select_resource(resources, _AUDIO_MIME, _AUDIO_EXT) == "https://x/a"

    def test_extension_match_when_mime_missing(self):
        resources = [{"url": "https://x/page.html"}, {"url": "//x/track.WAV"}]
        assert select_resource(resources, _AUDIO_MIME, _AUDIO_EXT) == "https://x/track.WAV"

    def test_no_match(self):
        resources = [{"url": "https://x/page.html", "mime_type": "text/html"}]
        assert select_resource(resources, _AUDIO_MIME, _AUDIO_EXT) is None


# ── Search ─────────────────────────────────────────────────────────────────────


class TestSearchArchive:
    def test_images_first_then_audio_and_video(self, make_collector):
        candidates = make_collector().search_archive("Spindletop Texas history")
        assert [(c.type, c.url) for c in candidates] == [
            ("image", "https://tile.loc.gov/gusher.jpg"),
            ("image", "https://tile.loc.gov/derricks.jpg"),
            ("audio", "https://tile.loc.gov/oral.mp3"),
            ("video", "https://tile.loc.gov/reel"),
        ]
        assert candidates[0].source == "Library of Congress - Images"

    def test_combined_list_truncated(self, make_collector):
        candidates = make_collector().search_archive("q", max_results=3)
        assert len(candidates) == 3
        assert [c.type for c in candidates] == ["image", "image", "audio"]

    def test_audio_and_video_get_half(self, make_collector):
        candidates = make_collector().search_archive("q", max_results=1)
        assert [c.type for c in candidates] == ["image"]

    def test_failed_endpoint_contributes_nothing(self, make_collector):
        candidates = make_collector(fail={"/pictures/search/"}).search_archive("q")
        assert [c.type for c in candidates] == ["audio", "video"]

    def test_all_endpoints_failing(self, make_collector):
        collector = make_collector(fail={"/pictures/search/", "/audio/", "/film/"})
        assert collector.search_archive("q") == []

    def test_malformed_results_are_skipped(self, store, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host != "www.loc.gov":
                return httpx.Response(200, content=b"media-bytes")
            payload = {
                "/pictures/search/": {"results": [
                    {"title": "Odd", "image": "https://tile.loc.gov/odd.jpg"},
                    {"title": "Numbered", "image": {"full": "https://tile.loc.gov/n.jpg"}, "reproduction_number": ["LC-1", "LC-2"]},
                    {"title": "Lucas Gusher", "image": {"full": "//tile.loc.gov/gusher.jpg"}},
                ]},
                "/audio/": {"results": [{"title": "Bad resources", "resources": {"url": "https://tile.loc.gov/a.mp3"}}]},
                "/film/": {"results": [{"title": "Bad resources", "resources": 42}]},
            }[request.url.path]
            return httpx.Response(200, json=payload)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            collector = MediaCollector(store, settings, client=client)
            result = collector.research_and_collect("Spindletop", [])

        assert result.media_count == 1
        assert [m.title for m in result.media] == ["Lucas Gusher"]
        assert len(store.list_topic_media(result.topic_id)) == 1


# ── Download + collection ──────────────────────────────────────────────────────


class TestCollectMedia:
    def test_downloads_with_typed_extensions(self, make_collector, settings):
        media = make_collector().collect_media("Spindletop", ["gusher"])

        assert [m.type for m in media] == ["image", "image", "audio", "video"]
        assert [m.path.rsplit(".", 1)[1] for m in media] == ["jpg", "jpg", "mp3", "mp4"]
        assert all(m.path.startswith("/images/historical/spindletop-") for m in media)
        for item in media:
            written = settings.images_dir / item.path.rsplit("/", 1)[1]
            assert written.read_bytes() == b"media-bytes"

    def test_single_download_failure_is_skipped(self, make_collector):
        collector = make_collector(missing={"https://tile.loc.gov/derricks.jpg"})
        media = collector.collect_media("Spindletop", [])
        assert [m.title for m in media] == ["Lucas Gusher", "Oral history", "Newsreel"]

    def test_empty_body_is_skipped(self, store, settings):
        def handler(request):
            return httpx.Response(200, content=b"")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            collector = MediaCollector(store, settings, client=client)
            assert collector.download("https://tile.loc.gov/x.jpg", "x", "image") is None

    def test_timeout_is_skipped(self, store, settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            collector = MediaCollector(store, settings, client=client)
            assert collector.download("https://tile.loc.gov/x.jpg", "x", "image") is None


class TestResearchAndCollect:
    def test_creates_topic_and_links_media(self, make_collector, store):
        result = make_collector().research_and_collect("Spindletop", ["gusher"])

        assert result.media_count == 4
        topic = store.get_researched_topic(result.topic_id)
        assert topic.topic == "Spindletop"
        assert topic.keywords == ["gusher"]
        linked = store.list_topic_media(result.topic_id)
        assert [m.media_type for m in linked] == ["image", "image", "audio", "video"]

    def test_existing_topic_is_reused(self, make_collector, store):
        topic_id = store.create_topic("Spindletop", [])
        result = make_collector().research_and_collect("Spindletop", [], existing_topic_id=topic_id)

        assert result.topic_id == topic_id
        assert len(store.list_researched_topics()) == 1
        assert len(store.list_topic_media(topic_id)) == 4

    def test_collecting_twice_for_one_topic_appends_media(self, make_collector, store):
        topic_id = store.create_topic("Spindletop", [])
        collector = make_collector()

        collector.research_and_collect("Spindletop", [], existing_topic_id=topic_id)
        collector.research_and_collect("Spindletop", [], existing_topic_id=topic_id)

        assert len(store.list_researched_topics()) == 1
        assert len(store.list_topic_media(topic_id)) == 8

    def test_missing_existing_topic_downloads_nothing(self, make_collector, store, settings):
        with pytest.raises(TopicNotFoundError):
            make_collector().research_and_collect("Spindletop", [], existing_topic_id=999)

        assert store.list_researched_topics() == []
        assert not settings.images_dir.exists() or list(settings.images_dir.iterdir()) == []

    def test_no_media_still_creates_topic(self, make_collector, store):
        collector = make_collector(fail={"/pictures/search/", "/audio/", "/film/"})
        result = collector.research_and_collect("Cajun", [])
        assert result.media_count == 0
        assert store.get_researched_topic(result.topic_id) is not None

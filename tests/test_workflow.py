"""Tests for core/workflow.py — the query → page pipeline."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from core.errors import TopicNotFoundError
from core.media import MediaCollector
from core.renderer import PageRenderer
from core.workflow import ResearchWorkflow


def loc_handler(request: httpx.Request) -> httpx.Response:
    """One image hit per search; every file download succeeds."""
    if request.url.host == "www.loc.gov":
        if request.url.path == "/pictures/search/":
            query = request.url.params["q"]
            return httpx.Response(
                200,
                json={"results": [{"title": f"Photo for {query}", "image": {"full": "https://tile.loc.gov/p.jpg"}}]},
            )
        return httpx.Response(200, json={"results": []})
    return httpx.Response(200, content=b"\xff\xd8jpeg")


@pytest.fixture
def http_client():
    with httpx.Client(transport=httpx.MockTransport(loc_handler)) as client:
        yield client


@pytest.fixture
def workflow(store, settings, http_client) -> ResearchWorkflow:
    collector = MediaCollector(store, settings, client=http_client)
    return ResearchWorkflow(store, collector, PageRenderer(store, settings))


class TestRun:
    def test_no_topic_short_circuits(self, store, settings):
        collector = MagicMock()
        renderer = MagicMock()
        workflow = ResearchWorkflow(store, collector, renderer)

        assert workflow.run("hello there") is None
        collector.research_and_collect.assert_not_called()
        renderer.render.assert_not_called()
        assert store.list_researched_topics() == []

    def test_spindletop_end_to_end(self, workflow, store, settings):
        result = workflow.run("Tell me about the Spindletop oil discovery in 1901")

        assert result.topic == "Spindletop"
        assert result.media_count == 1
        assert result.page_url == f"/presentations/spindletop-{result.topic_id}.html"

        topic = store.get_researched_topic(result.topic_id)
        assert topic.keywords == ["spindletop", "discovery", "1901"]
        assert topic.presentation_generated is True

        html = (settings.presentations_dir / f"spindletop-{result.topic_id}.html").read_text(encoding="utf-8")
        assert "Spindletop Oil Gusher Erupts" in html
        assert "Photo for Spindletop spindletop discovery 1901 Texas history" in html
        assert len(list(settings.images_dir.glob("*.jpg"))) == 1

    def test_append_to_existing_topic(self, workflow, store):
        first = workflow.run("Tell me about Spindletop")
        second = workflow.run("What was Spindletop like", existing_topic_id=first.topic_id)

        assert second.topic_id == first.topic_id
        assert len(store.list_researched_topics()) == 1
        assert len(store.list_topic_media(first.topic_id)) == 2
        assert second.page_url == first.page_url
        assert len(store.find_presentations(["Spindletop"])) == 2

    def test_render_failure_keeps_collected_rows(self, workflow, store):
        with patch.object(workflow.renderer, "render", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                workflow.run("Tell me about lumber")

        [topic] = store.list_researched_topics()
        assert topic.topic == "lumber"
        assert len(store.list_topic_media(topic.id)) == 1


class TestEnhance:
    def test_unknown_topic(self, workflow):
        with pytest.raises(TopicNotFoundError):
            workflow.enhance(42, "Spindletop", "the gusher")

    def test_runs_contextual_query(self, workflow, store):
        topic_id = store.create_topic("Spindletop", [])
        with patch.object(workflow, "run", wraps=workflow.run) as run:
            result = workflow.enhance(topic_id, "Spindletop", "the drilling crews")

        run.assert_called_once_with(
            "the drilling crews (related to Spindletop in Southeast Texas history)",
            existing_topic_id=topic_id,
        )
        assert result.topic_id == topic_id


class TestPopulateAll:
    def test_statuses(self, store, settings):
        collector = MagicMock()
        renderer = MagicMock()
        workflow = ResearchWorkflow(store, collector, renderer)
        existing = store.create_topic("Cajun Culture", [])
        store.add_presentation(existing, "Cajun Culture", "", "/tmp/cajun.html")

        def fake_run(query, existing_topic_id=None):
            if "Hurricanes" in query:
                raise RuntimeError("archive down")
            if "Education" in query:
                return None
            return MagicMock()

        with patch.object(workflow, "run", side_effect=fake_run):
            statuses = workflow.populate_all(delay=0)

        assert statuses["Cajun Culture"] == "skipped"
        assert statuses["Hurricanes"] == "error"
        assert statuses["Education"] == "failed"
        assert statuses["Oil & Energy"] == "success"
        assert len(statuses) == 10

"""Tests for core/chat.py — context building and the Claude call (mocked)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from core.chat import (
    ERROR_REPLY,
    UNAVAILABLE_REPLY,
    HistoricalContext,
    HistoryChatAgent,
    build_system_prompt,
)


def make_response(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.messages.create.return_value = make_response("The Lucas Gusher blew in 1901.")
    return mock


@pytest.fixture
def agent(store, settings, client) -> HistoryChatAgent:
    return HistoryChatAgent(store, settings, client=client)


class TestContext:
    def test_context_includes_reference_data(self, agent):
        context = agent.get_context("spindletop")
        assert len(context.cities) == 8
        assert len(context.topics) == 10
        assert [p.start_year for p in context.periods] == sorted(p.start_year for p in context.periods)
        assert len(context.facts) == 3

    def test_system_prompt_lists_facts(self, agent):
        prompt = build_system_prompt(agent.get_context("shipbuilding"))
        assert "CITIES AND TOWNS:" in prompt
        assert "- Beaumont (Jefferson County, founded 1838)" in prompt
        assert "RELEVANT HISTORICAL FACTS:" in prompt
        assert "[1941] Orange Shipbuilding in World War II" in prompt
        assert "City: Orange" in prompt
        assert prompt.rstrip().endswith("Southeast Texas heritage!")

    def test_prompt_without_facts(self):
        prompt = build_system_prompt(HistoricalContext())
        assert "RELEVANT HISTORICAL FACTS" not in prompt
        assert "GUIDELINES:" in prompt


class TestChat:
    def test_successful_reply(self, agent, client, settings):
        reply = agent.chat("spindletop")

        assert reply.success is True
        assert reply.response == "The Lucas Gusher blew in 1901."
        assert reply.context_used == 3
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == settings.chat_model
        assert kwargs["messages"] == [{"role": "user", "content": "spindletop"}]
        assert "Spindletop Oil Gusher Erupts" in kwargs["system"]

    def test_replays_recent_history_starting_with_user(self, agent, client, store):
        conversation, _ = store.get_or_create_conversation("s1")
        for i in range(7):
            role = "user" if i % 2 == 0 else "assistant"
            store.add_chat_message(conversation.id, role, f"turn {i}")

        agent.chat("and then?", conversation.id)

        messages = client.messages.create.call_args.kwargs["messages"]
        # last six stored turns begin with an assistant turn, which is dropped
        assert [m["content"] for m in messages] == ["turn 2", "turn 3", "turn 4", "turn 5", "turn 6", "and then?"]
        assert messages[0]["role"] == "user"

    def test_blank_message_raises(self, agent):
        with pytest.raises(ValueError):
            agent.chat("   ")

    def test_connection_error_gives_canned_reply(self, agent, client):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.messages.create.side_effect = anthropic.APIConnectionError(request=request)

        reply = agent.chat("spindletop")

        assert reply.success is False
        assert reply.response == UNAVAILABLE_REPLY

    def test_api_error_gives_canned_reply(self, agent, client):
        client.messages.create.side_effect = anthropic.AnthropicError("bad request")

        reply = agent.chat("spindletop")

        assert reply.success is False
        assert reply.response == ERROR_REPLY
        assert reply.error == "bad request"

    @patch("core.chat.anthropic.Anthropic")
    def test_client_is_lazy(self, mock_anthropic, store, settings):
        agent = HistoryChatAgent(store, settings)
        mock_anthropic.assert_not_called()

        mock_anthropic.return_value.messages.create.return_value = make_response("hi")
        agent.chat("hello")

        mock_anthropic.assert_called_once_with(api_key="test-key", max_retries=5)

    @patch("core.chat.anthropic.Anthropic")
    def test_missing_api_key_gives_canned_reply(self, mock_anthropic, store, settings):
        settings.anthropic_api_key = ""
        agent = HistoryChatAgent(store, settings)

        reply = agent.chat("spindletop")

        assert reply.success is False
        assert reply.response == UNAVAILABLE_REPLY
        mock_anthropic.assert_not_called()


class TestExtractInsight:
    def test_story_with_place_is_an_insight(self, agent, store):
        message = (
            "My grandfather told me he walked out to Spindletop the morning after the "
            "gusher came in, and the whole hill in Beaumont smelled of crude oil."
        )
        insight = agent.extract_insight(message)
        assert insight is not None
        assert insight.confidence == "low"
        assert insight.city_id == store.get_city_id("Beaumont")

    def test_short_message_is_not(self, agent):
        assert agent.extract_insight("My grandfather lived in Orange in 1940.") is None

    def test_needs_a_place(self, agent):
        message = "My grandmother remembered the story of the storm of 1915 very well, " * 2
        assert agent.extract_insight(message) is None

    def test_texas_without_city_has_no_city_id(self, agent):
        message = (
            "I heard a story from my family about the oil boom years in Texas that I "
            "have never seen written down anywhere in the history books."
        )
        insight = agent.extract_insight(message)
        assert insight is not None
        assert insight.city_id is None

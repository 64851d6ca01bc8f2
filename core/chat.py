"""
Local history chat agent.

Every question is answered with the reference data in the system prompt:
all cities, topics and periods, plus up to ten verified facts matching the
question. The last few stored messages of the conversation are replayed so
follow-up questions keep their context.

The Anthropic client is lazy-initialised so that the agent can be built
(and tested) without an API key; a missing key or an unreachable API turns
into a canned reply rather than an exception.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import anthropic

from core.models import (
    ChatReply,
    HistoricalCity,
    HistoricalFact,
    HistoricalPeriod,
    HistoricalTopic,
    Insight,
)

if TYPE_CHECKING:
    from config.settings import Settings
    from core.database import HistoryStore

logger = logging.getLogger(__name__)

CONTEXT_FACT_LIMIT = 10
HISTORY_LIMIT = 6

UNAVAILABLE_REPLY = (
    "I apologize, but I'm currently unable to connect to my knowledge base. "
    "In the meantime, you can browse the historical facts in the database directly."
)
ERROR_REPLY = "I encountered an error processing your question. Please try again."

GUIDELINES = """GUIDELINES:
- Provide accurate, detailed answers about Southeast Texas history
- Use the historical facts provided in your context when relevant
- If you mention a specific event or fact, cite the year when possible
- Be conversational and engaging, like a knowledgeable local historian
- If asked about something you're uncertain about, acknowledge the limitation but provide related information you do know
- Connect historical events to their significance for the region today
- Share interesting details and stories that bring history to life
- When users share new historical information or stories, acknowledge them warmly

Remember: You're helping people discover and appreciate Southeast Texas heritage!"""

# ── Insight heuristics ─────────────────────────────────────────────────────

_YEAR_RE = re.compile(r"\b(18|19|20)\d{2}\b")
_STORY_RE = re.compile(
    r"\b(remember|told|grandfather|grandmother|story|heard|happened|recalled|family|ancestor|witnessed)\b",
    re.IGNORECASE,
)
_PLACE_RE = re.compile(
    r"\b(beaumont|port arthur|orange|nederland|groves|vidor|bridge city|texas|golden triangle)\b",
    re.IGNORECASE,
)
_CITY_RE = re.compile(
    r"\b(beaumont|port arthur|orange|nederland|groves|vidor|bridge city)\b",
    re.IGNORECASE,
)
_MIN_INSIGHT_LENGTH = 100


@dataclass
class HistoricalContext:
    facts: list[HistoricalFact] = field(default_factory=list)
    cities: list[HistoricalCity] = field(default_factory=list)
    topics: list[HistoricalTopic] = field(default_factory=list)
    periods: list[HistoricalPeriod] = field(default_factory=list)


def build_system_prompt(context: HistoricalContext) -> str:
    """Render the reference data and matching facts into a system prompt."""
    lines = [
        "You are the Southeast Texas Local History Agent, an expert on the history, "
        "culture, and heritage of Southeast Texas, particularly the Golden Triangle "
        "region (Beaumont, Port Arthur, and Orange).",
        "",
        "Your knowledge includes:",
        "",
        "CITIES AND TOWNS:",
    ]
    lines += [
        f"- {c.name} ({c.county} County, founded {c.founded_year}): {c.founding_story}"
        for c in context.cities
    ]
    lines += ["", "HISTORICAL TOPICS:"]
    lines += [f"- {t.name}: {t.description}" for t in context.topics]
    lines += ["", "HISTORICAL PERIODS:"]
    lines += [
        f"- {p.name} ({p.start_year}-{p.end_year}): {p.description}"
        for p in context.periods
    ]

    if context.facts:
        lines += ["", "RELEVANT HISTORICAL FACTS:"]
        for fact in context.facts:
            lines += ["", f"[{fact.event_year}] {fact.title}", fact.content]
            if fact.city_name:
                lines.append(f"City: {fact.city_name}")
            if fact.topic_name:
                lines.append(f"Topic: {fact.topic_name}")

    lines += ["", GUIDELINES]
    return "\n".join(lines)


class HistoryChatAgent:
    """Answers history questions with Claude, grounded in the local database."""

    def __init__(
        self,
        store: HistoryStore,
        settings: Settings,
        client: Optional[anthropic.Anthropic] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=5,
            )
        return self._client

    def get_context(self, message: str) -> HistoricalContext:
        return HistoricalContext(
            facts=self.store.search_verified_facts(message, limit=CONTEXT_FACT_LIMIT),
            cities=self.store.list_cities(),
            topics=self.store.list_topics(),
            periods=self.store.list_periods(),
        )

    def _history(self, conversation_id: Optional[int]) -> list[dict]:
        if conversation_id is None:
            return []
        messages = [
            m.model_dump() for m in self.store.recent_messages(conversation_id, HISTORY_LIMIT)
        ]
        # The Messages API wants the first turn to come from the user.
        while messages and messages[0]["role"] != "user":
            messages.pop(0)
        return messages

    def chat(self, message: str, conversation_id: Optional[int] = None) -> ChatReply:
        """Answer *message*, replaying recent turns of *conversation_id*.

        The turn itself is not stored here; the caller records both sides.

        Raises:
            ValueError: If message is blank.
        """
        message = message.strip()
        if not message:
            raise ValueError("Message must not be empty.")

        context = self.get_context(message)
        system = build_system_prompt(context)
        messages = [*self._history(conversation_id), {"role": "user", "content": message}]

        if self._client is None and not self.settings.anthropic_api_key:
            logger.error("Chat API key is not configured")
            return ChatReply(response=UNAVAILABLE_REPLY, success=False, error="Chat model not configured")

        try:
            response = self.client.messages.create(
                model=self.settings.chat_model,
                max_tokens=self.settings.chat_max_tokens,
                system=system,
                messages=messages,
            )
        except anthropic.APIConnectionError as exc:
            logger.error("Chat API unreachable: %s", exc)
            return ChatReply(response=UNAVAILABLE_REPLY, success=False, error="Chat model not available")
        except anthropic.AnthropicError as exc:
            logger.error("Chat request failed: %s", exc)
            return ChatReply(response=ERROR_REPLY, success=False, error=str(exc))

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        return ChatReply(response=text, success=True, context_used=len(context.facts))

    def extract_insight(self, message: str) -> Optional[Insight]:
        """Flag a message that looks like a first-hand local history account.

        Long messages (over 100 characters) that mention a year or a story
        word, and a local place, qualify. The first city named is resolved to
        its id when it is in the database.
        """
        has_detail = bool(_YEAR_RE.search(message) or _STORY_RE.search(message))
        if len(message) <= _MIN_INSIGHT_LENGTH or not has_detail or not _PLACE_RE.search(message):
            return None

        city_id = None
        if match := _CITY_RE.search(message):
            city_id = self.store.get_city_id(match.group(0))
        return Insight(text=message, city_id=city_id)

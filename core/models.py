"""
Pydantic models shared across the SETX History core.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

MediaType = Literal["image", "audio", "video"]


# ── Reference data ─────────────────────────────────────────────────────────


class HistoricalCity(BaseModel):
    """A Southeast Texas city or town."""

    id: int
    name: str
    county: Optional[str] = None
    founded_year: Optional[int] = None
    founding_story: Optional[str] = None
    nickname: Optional[str] = None


class HistoricalTopic(BaseModel):
    """A broad subject area such as "Oil & Energy"."""

    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


class HistoricalPeriod(BaseModel):
    """A named span of years."""

    id: int
    name: str
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    description: Optional[str] = None
    significance: Optional[str] = None


class HistoricalFact(BaseModel):
    """A single historical fact, with its city/topic names when joined."""

    id: int
    title: str
    content: str
    event_date: Optional[str] = None
    event_year: Optional[int] = None
    city_id: Optional[int] = None
    topic_id: Optional[int] = None
    period_id: Optional[int] = None
    source_name: Optional[str] = None
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    is_verified: bool = False
    importance: int = 5
    city_name: Optional[str] = None
    topic_name: Optional[str] = None


# ── Research pipeline ──────────────────────────────────────────────────────


class ResearchedTopic(BaseModel):
    """A topic the research workflow has run for."""

    id: int
    topic: str
    keywords: list[str] = Field(default_factory=list)
    user_id: str = "default"
    researched_at: datetime
    presentation_generated: bool = False


class TopicMedia(BaseModel):
    """A downloaded media file linked to a researched topic."""

    id: int
    topic_id: int
    media_path: str
    media_type: MediaType = "image"
    title: Optional[str] = None
    source: Optional[str] = None
    collected_at: datetime


class MediaCandidate(BaseModel):
    """A search hit from the media archive, not yet downloaded."""

    title: str
    url: str
    source: str
    type: MediaType
    reproduction_number: Optional[str] = None


class MediaItem(BaseModel):
    """A media file that was downloaded successfully."""

    path: str
    title: str
    source: str
    type: MediaType


class CollectionResult(BaseModel):
    topic_id: int
    topic: str
    media_count: int
    media: list[MediaItem] = Field(default_factory=list)


class GalleryItem(BaseModel):
    """One entry of a page gallery."""

    src: str
    title: str = ""
    source: str = ""
    type: MediaType = "image"


class FactView(BaseModel):
    """The parts of a fact shown on a generated page."""

    title: str
    content: str
    event_year: Optional[int] = None
    city_name: Optional[str] = None
    topic_name: Optional[str] = None
    source_name: Optional[str] = None


class PageFragments(BaseModel):
    """Structured sections of a presentation, stored alongside its HTML."""

    title: str
    subtitle: str
    gallery: list[GalleryItem] = Field(default_factory=list)
    facts: list[FactView] = Field(default_factory=list)


class Presentation(BaseModel):
    id: int
    topic_id: int
    title: str
    content: str = ""
    html_path: str = ""
    fragments: Optional[PageFragments] = None
    created_at: datetime
    research_topic: Optional[str] = None


class RenderedPage(BaseModel):
    """Where a freshly rendered presentation was written."""

    presentation_id: int
    filename: str
    file_path: str
    url: str


class ConsolidatedPage(BaseModel):
    id: int
    main_topic: str
    display_name: str
    html_path: str
    presentation_count: int = 0
    created_at: datetime
    updated_at: datetime


class ConsolidationResult(BaseModel):
    category: str
    filename: str
    file_path: str
    url: str
    presentation_count: int


class WorkflowResult(BaseModel):
    topic_id: int
    topic: str
    media_count: int
    page_url: str
    page_path: str


# ── Chat & contributions ───────────────────────────────────────────────────


class Conversation(BaseModel):
    id: int
    session_id: str
    user_ip: Optional[str] = None
    started_at: datetime


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatReply(BaseModel):
    """What the chat agent hands back to the HTTP layer."""

    response: str
    success: bool
    context_used: int = 0
    error: Optional[str] = None


class Insight(BaseModel):
    """A user message that may hold new local history worth reviewing."""

    text: str
    confidence: str = "low"
    city_id: Optional[int] = None


class Contribution(BaseModel):
    id: int
    topic: str
    fact_title: str
    fact_content: str
    source: str = "Public contribution"
    contributor_name: str = "Anonymous"
    contributor_email: Optional[str] = None
    status: str = "pending"
    created_at: datetime

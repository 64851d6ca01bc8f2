"""Exceptions raised by the SETX History core."""

from __future__ import annotations


class HistoryError(Exception):
    """Base class for errors raised by the core package."""


class TopicNotFoundError(HistoryError, LookupError):
    """A researched-topic id has no matching row."""

    def __init__(self, topic_id: int) -> None:
        super().__init__(f"Researched topic {topic_id} not found")
        self.topic_id = topic_id

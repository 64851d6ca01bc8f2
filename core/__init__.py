"""
setx-history core package.

Modules
───────
models        — Pydantic data models (facts, researched topics, media, pages, chat)
errors        — exception types (HistoryError, TopicNotFoundError)
seed          — reference cities, topics, periods and facts
database      — SQLite-backed HistoryStore for every table
extractor     — topic / keyword extraction from free-text queries
media         — Library of Congress search + media downloads
renderer      — presentation pages (Jinja2) written to disk
consolidator  — tabbed category pages + deferred consolidation scheduler
workflow      — query → topic → media → page pipeline
chat          — Claude-backed local history chat agent
"""

"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

#: Repository root; default data and public directories live beneath it.
BASE_DIR = Path(__file__).resolve().parent.parent


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "3002"))
    )

    # ── Storage ─────────────────────────────────────────────────────────────
    db_path: Path = field(
        default_factory=lambda: Path(
            os.environ.get("DB_PATH", str(BASE_DIR / "data" / "history.db"))
        )
    )
    #: Root of everything served as static files (pages and media).
    public_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("PUBLIC_DIR", str(BASE_DIR / "public"))
        )
    )

    # ── Media archive ───────────────────────────────────────────────────────
    loc_base_url: str = field(
        default_factory=lambda: os.environ.get("LOC_BASE_URL", "https://www.loc.gov")
    )
    max_media_results: int = field(
        default_factory=lambda: int(os.environ.get("MAX_MEDIA_RESULTS", "10"))
    )
    download_timeout: float = field(
        default_factory=lambda: float(os.environ.get("DOWNLOAD_TIMEOUT", "30"))
    )

    # ── Pages ───────────────────────────────────────────────────────────────
    page_fact_limit: int = field(
        default_factory=lambda: int(os.environ.get("PAGE_FACT_LIMIT", "10"))
    )
    #: Seconds to wait after a research request before consolidating its category.
    consolidation_delay: float = field(
        default_factory=lambda: float(os.environ.get("CONSOLIDATION_DELAY", "5"))
    )
    #: Pause between categories in a consolidate-all run.
    consolidate_all_delay: float = field(
        default_factory=lambda: float(os.environ.get("CONSOLIDATE_ALL_DELAY", "1"))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    chat_model: str = field(
        default_factory=lambda: os.environ.get("CHAT_MODEL", "claude-haiku-4-5")
    )
    chat_max_tokens: int = 1024

    @property
    def presentations_dir(self) -> Path:
        return self.public_dir / "presentations"

    @property
    def images_dir(self) -> Path:
        return self.public_dir / "images" / "historical"

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )

"""
CoffeeTime AI Backend: AI Settings SQLAlchemy Model
===================================================

What:  ORM model for the `ai_settings` table, one row per user.
How:   Key maps are stored as JSON objects keyed by provider discriminant.
       Generic column types keep the table portable between PostgreSQL
       (production) and SQLite (tests).
Who:   AISettingsService; Alembic migration 001.
When:  Row is created on the first write for a user; reads of an absent
       row return defaults without inserting.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from coffeetime.database import Base


class AISettingsRecord(Base):
    __tablename__ = "ai_settings"

    user_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Owner of these settings",
    )

    # ── Text model selection ──────────────────────────────────────────────
    selected_provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    selected_model_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    api_keys: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Text provider → API key",
    )

    # ── Image generation ──────────────────────────────────────────────────
    image_use_text_settings: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    image_provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    image_api_keys: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Image provider → API key",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        comment="Last write (UTC)",
    )

    def __repr__(self) -> str:
        # Keys are never included
        return (
            f"<AISettingsRecord(user_id='{self.user_id}', "
            f"provider='{self.selected_provider}', model='{self.selected_model_id}')>"
        )

# knowbase/models/article.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, Text, ForeignKey
from knowbase.models.base import Base
from knowbase.models.tag import article_tags, Tag


def utcnow() -> datetime:
    # naive UTC, SQLite speichert ohnehin keine Zeitzone
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Article(Base):
    __tablename__ = "articles"

    id:          Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    title:       Mapped[str]      = mapped_column(String(255), nullable=False)
    content:     Mapped[str]      = mapped_column(Text, nullable=False)
    # kein ON DELETE CASCADE: Artikel verschwinden nur über den Kaskaden-Pfad im Category-Service
    category_id: Mapped[int]      = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at:  Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at:  Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Tags (Viele-zu-Vielen)
    tags = relationship(
        Tag,
        secondary=article_tags,
        lazy="selectin",
        order_by=Tag.name,
    )

    def __repr__(self) -> str:
        return f"<Article {self.id}:{self.title}>"

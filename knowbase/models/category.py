# knowbase/models/category.py
from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey
from knowbase.models.base import Base


class Category(Base):
    __tablename__ = "categories"

    id:         Mapped[int]        = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:       Mapped[str]        = mapped_column(String(96), nullable=False)
    # RESTRICT: Kategorien mit Kindern dürfen nicht gelöscht werden
    parent_id:  Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    sort_order: Mapped[int]        = mapped_column(Integer, nullable=False, default=0, server_default="0")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
        }

    def __repr__(self) -> str:
        return f"<Category {self.id}:{self.name}>"

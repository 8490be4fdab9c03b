from knowbase.models.base import Base  # noqa: F401

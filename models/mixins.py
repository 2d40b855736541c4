from sqlalchemy.sql import func
from sqlalchemy import Column, DateTime


class CreatedAtMixin:
    created_at = Column(DateTime, default=func.now())


class UpdatedAtMixin:
    # Bumped on password changes and verification
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

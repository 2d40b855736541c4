from core.database import Base
from sqlalchemy import (Column, Integer, String, Boolean)
from .mixins import CreatedAtMixin, UpdatedAtMixin


class User(Base, CreatedAtMixin, UpdatedAtMixin):
    __tablename__ = "users"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    # Set once the emailed verification token is redeemed
    is_verified = Column(Boolean, default=False, nullable=False)

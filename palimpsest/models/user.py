"""
Users. Provisioned from token claims on first authenticated call.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class User(RecordBase):
    __tablename__ = "user"

    email: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    password: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

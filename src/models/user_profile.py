"""UserProfile model — community members with role and XP balance."""

from __future__ import annotations

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import UserRole


class UserProfile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "user_profiles"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        pg_enum(UserRole, "userrole"), nullable=False, server_default="member"
    )
    xp_total: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    __table_args__ = (Index("ix_user_profiles_role", "role"),)

    def __repr__(self) -> str:
        return f"<UserProfile id={self.id} role={self.role} xp={self.xp_total}>"

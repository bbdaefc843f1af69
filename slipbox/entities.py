# slipbox/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class User(Base, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)


class Category(Base, TimestampMixin):
    """
    A named grouping of slips. Exactly one category per owner is MAIN; its
    slips share the unified main space with the owner's topics.
    """
    __tablename__ = "category"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    is_main: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        Index(
            "uq_category_one_main_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_main"),
            sqlite_where=text("is_main"),
        ),
    )


class Slip(Base, TimestampMixin):
    __tablename__ = "slip"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("category.id", ondelete="CASCADE"),
        nullable=False,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # written only by the Sequencer
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("category_id", "order", name="uq_slip_category_order"),
        Index("ix_slip_user_id", "user_id"),
    )


class Topic(Base, TimestampMixin):
    __tablename__ = "topic"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)

    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # shares the unified main space with the MAIN category's slips
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "order", name="uq_topic_user_order"),
    )

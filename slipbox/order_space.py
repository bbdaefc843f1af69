# slipbox/order_space.py
"""
Item model and order spaces.

Slips and topics are different tables but one topic and one MAIN slip can sit
next to each other in the same sequence. `ItemRef` wraps either row behind an
explicit `kind` so the ordering code never has to guess what it holds.

Two space topologies exist per owner:
  - the unified main space: slips whose category is MAIN, plus every topic
  - one per-category space for each other category, holding only its slips
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from slipbox.entities import Category, Slip, Topic
from slipbox.errors import InvalidArgumentError, NotFoundError


class ItemKind(str, Enum):
    SLIP = "slip"
    TOPIC = "topic"

    @classmethod
    def parse(cls, value) -> "ItemKind":
        if isinstance(value, ItemKind):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown item kind: {value!r} (expected 'slip' or 'topic')") from None


# ties on `order` resolve slips first, then creation time, then id
_KIND_RANK = {ItemKind.SLIP: 0, ItemKind.TOPIC: 1}


def _naive(moment: Optional[datetime]) -> datetime:
    # SQLite hands back naive values, freshly flushed rows keep their tzinfo
    if moment is None:
        return datetime.max
    return moment.replace(tzinfo=None)


@dataclass(frozen=True)
class ItemRef:
    kind: ItemKind
    row: Union[Slip, Topic]

    @classmethod
    def of(cls, row: Union[Slip, Topic]) -> "ItemRef":
        if isinstance(row, Slip):
            return cls(ItemKind.SLIP, row)
        if isinstance(row, Topic):
            return cls(ItemKind.TOPIC, row)
        raise TypeError(f"Not an orderable row: {type(row).__name__}")

    @property
    def id(self) -> str:
        return self.row.id

    @property
    def key(self) -> tuple:
        return (self.kind, self.row.id)

    @property
    def order(self) -> int:
        return self.row.order

    @property
    def sort_key(self) -> tuple:
        return (self.row.order, _KIND_RANK[self.kind], _naive(self.row.created_at), self.row.id)


@dataclass(frozen=True)
class OrderSpace:
    owner_id: str
    main_category_id: str
    category_id: str

    @classmethod
    def main(cls, owner_id: str, main_category_id: str) -> "OrderSpace":
        return cls(owner_id, main_category_id, main_category_id)

    @classmethod
    def for_category(cls, owner_id: str, category: Category, main_category_id: str) -> "OrderSpace":
        return cls(owner_id, main_category_id, category.id)

    @classmethod
    def of_slip(cls, slip: Slip, main_category_id: str) -> "OrderSpace":
        return cls(slip.user_id, main_category_id, slip.category_id)

    @property
    def is_main(self) -> bool:
        return self.category_id == self.main_category_id

    def contains(self, item: ItemRef) -> bool:
        if item.row.user_id != self.owner_id:
            return False
        if item.kind is ItemKind.TOPIC:
            return self.is_main
        return item.row.category_id == self.category_id

    def describe(self) -> str:
        if self.is_main:
            return f"main({self.owner_id})"
        return f"category({self.category_id})"


# -----------------------
# Owner-scoped lookups
# -----------------------

def main_category(session: Session, owner_id: str) -> Category:
    category = session.execute(
        select(Category).where(Category.user_id == owner_id, Category.is_main.is_(True))
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError("Main category not found")
    return category


def main_space(session: Session, owner_id: str) -> OrderSpace:
    return OrderSpace.main(owner_id, main_category(session, owner_id).id)


def find_category(session: Session, owner_id: str, category_id) -> Category:
    category = session.execute(
        select(Category).where(Category.id == str(category_id), Category.user_id == owner_id)
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError(f"Category not found: {category_id}")
    return category


def find_slip(session: Session, owner_id: str, slip_id) -> Slip:
    slip = session.execute(
        select(Slip).where(Slip.id == str(slip_id), Slip.user_id == owner_id)
    ).scalar_one_or_none()
    if slip is None:
        raise NotFoundError(f"Slip not found: {slip_id}")
    return slip


def find_topic(session: Session, owner_id: str, topic_id) -> Topic:
    topic = session.execute(
        select(Topic).where(Topic.id == str(topic_id), Topic.user_id == owner_id)
    ).scalar_one_or_none()
    if topic is None:
        raise NotFoundError(f"Topic not found: {topic_id}")
    return topic


def find_item(session: Session, owner_id: str, kind, item_id) -> ItemRef:
    kind = ItemKind.parse(kind)
    if kind is ItemKind.SLIP:
        return ItemRef.of(find_slip(session, owner_id, item_id))
    return ItemRef.of(find_topic(session, owner_id, item_id))


def space_for(session: Session, item: ItemRef) -> OrderSpace:
    main_id = main_category(session, item.row.user_id).id
    if item.kind is ItemKind.TOPIC:
        return OrderSpace.main(item.row.user_id, main_id)
    return OrderSpace.of_slip(item.row, main_id)


# -----------------------
# Space queries
# -----------------------

def members(session: Session, space: OrderSpace, exclude: Optional[ItemRef] = None) -> list[ItemRef]:
    """
    Every item of the space, ascending by current order. `exclude` drops one
    item as if it were absent.
    """
    slip_query = select(Slip).where(
        Slip.user_id == space.owner_id,
        Slip.category_id == space.category_id,
    )
    if exclude is not None and exclude.kind is ItemKind.SLIP:
        slip_query = slip_query.where(Slip.id != exclude.id)

    items = [ItemRef.of(s) for s in session.execute(slip_query).scalars()]

    if space.is_main:
        topic_query = select(Topic).where(Topic.user_id == space.owner_id)
        if exclude is not None and exclude.kind is ItemKind.TOPIC:
            topic_query = topic_query.where(Topic.id != exclude.id)
        items.extend(ItemRef.of(t) for t in session.execute(topic_query).scalars())

    items.sort(key=lambda i: i.sort_key)
    return items


def next_position(session: Session, space: OrderSpace) -> int:
    """One past the current maximum order of the space, or 0 when empty."""
    max_slip = session.execute(
        select(func.max(Slip.order)).where(
            Slip.user_id == space.owner_id,
            Slip.category_id == space.category_id,
        )
    ).scalar()
    highest = -1 if max_slip is None else max_slip

    if space.is_main:
        max_topic = session.execute(
            select(func.max(Topic.order)).where(Topic.user_id == space.owner_id)
        ).scalar()
        if max_topic is not None:
            highest = max(highest, max_topic)

    return highest + 1


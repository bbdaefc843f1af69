# slipbox/item_service.py

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from slipbox import settings
from slipbox.entities import Category, Slip, Topic
from slipbox.errors import InvalidArgumentError
from slipbox.order_space import (
    ItemKind,
    ItemRef,
    OrderSpace,
    find_category,
    find_item,
    find_slip,
    find_topic,
    main_category,
    members,
    next_position,
)
from slipbox.sequencer import Sequencer, validate_position
from slipbox.transaction import unit_of_work

logger = logging.getLogger("slipbox_backend")

SLIP_UPDATE_FIELDS = {"content", "category_id", "order"}
TOPIC_UPDATE_FIELDS = {"name", "description", "order"}


class ItemService:
    """
    The operations clients can call. Each public method is one transaction:
    arguments are validated first, then the Sequencer does every order or
    category change, and the result is a plain dict.

    Every lookup is scoped to `user_id`; someone else's slip or topic is
    reported exactly like a missing one.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.SessionFactory = session_factory

    # -----------------------
    # Slips
    # -----------------------

    def create_slip(self, user_id: str, content, category_id, position=None) -> Dict[str, Any]:
        content = self._clean_text(content, "content", settings.SLIP_CONTENT_MAX_LENGTH)
        if position is not None:
            validate_position(position)
        if not category_id:
            raise InvalidArgumentError("category_id is required")

        with unit_of_work(self.SessionFactory) as session:
            category = find_category(session, user_id, category_id)
            space = self._space_for_category(session, user_id, category)

            slip = Slip(user_id=user_id, category_id=category.id, content=content)
            Sequencer(session).place_new(space, slip, position)

            logger.info(f"created slip {slip.id} in {space.describe()} at {slip.order}")
            return self._slip_dict(slip)

    def update_slip(self, user_id: str, slip_id, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Text edits are plain column updates. A new `category_id` moves the
        slip: into MAIN it lands at `order` (or the end), into any other
        category at `order` (or the front). An `order` on its own repositions
        the slip inside its current space.
        """
        changes = dict(changes or {})
        unknown = set(changes) - SLIP_UPDATE_FIELDS
        if unknown:
            raise InvalidArgumentError(f"Unknown slip fields: {sorted(unknown)}")

        content = None
        if "content" in changes:
            content = self._clean_text(changes["content"], "content", settings.SLIP_CONTENT_MAX_LENGTH)
        order = changes.get("order")
        if order is not None:
            validate_position(order)
        category_id = changes.get("category_id")
        if category_id is not None and str(category_id).strip() == "":
            raise InvalidArgumentError("category_id must not be empty")

        with unit_of_work(self.SessionFactory) as session:
            slip = find_slip(session, user_id, slip_id)
            destination = None
            if category_id is not None and str(category_id) != slip.category_id:
                destination = find_category(session, user_id, category_id)

            if content is not None:
                slip.content = content

            sequencer = Sequencer(session)
            item = ItemRef.of(slip)
            main = main_category(session, user_id)

            if destination is not None:
                space = OrderSpace.for_category(user_id, destination, main.id)
                if space.is_main:
                    index = order if order is not None else next_position(session, space)
                    sequencer.insert_at_position(space, item, index)
                else:
                    sequencer.transfer(item, space, order if order is not None else 0)
            elif order is not None:
                sequencer.insert_at_position(OrderSpace.of_slip(slip, main.id), item, order)

            session.flush()
            return self._slip_dict(slip)

    def delete_slip(self, user_id: str, slip_id) -> None:
        with unit_of_work(self.SessionFactory) as session:
            slip = find_slip(session, user_id, slip_id)
            Sequencer(session).remove(ItemRef.of(slip))
        logger.info(f"deleted slip {slip_id}")

    def bulk_reorder_slips(self, user_id: str, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        """All slips in one batch must share a category."""
        pairs = self._parse_reorder_entries(entries)

        with unit_of_work(self.SessionFactory) as session:
            slips = [(find_slip(session, user_id, item_id), order) for item_id, order in pairs]

            category_ids = {slip.category_id for slip, _ in slips}
            if len(category_ids) != 1:
                raise InvalidArgumentError("Slips in one reorder batch must belong to the same category")

            main = main_category(session, user_id)
            space = OrderSpace.of_slip(slips[0][0], main.id)
            written = Sequencer(session).bulk_reorder(
                space, [(ItemRef.of(slip), order) for slip, order in slips]
            )

        return {"message": "Slips reordered successfully", "rows_written": written}

    def get_slip(self, user_id: str, slip_id) -> Dict[str, Any]:
        with unit_of_work(self.SessionFactory) as session:
            return self._slip_dict(find_slip(session, user_id, slip_id))

    def list_slips(self, user_id: str, category_id=None) -> List[Dict[str, Any]]:
        with unit_of_work(self.SessionFactory) as session:
            query = select(Slip).where(Slip.user_id == user_id)
            if category_id is not None:
                category = find_category(session, user_id, category_id)
                query = query.where(Slip.category_id == category.id)
            query = query.order_by(Slip.order, Slip.created_at, Slip.id)
            return [self._slip_dict(s) for s in session.execute(query).scalars()]

    # -----------------------
    # Topics
    # -----------------------

    def create_topic(self, user_id: str, name, description=None, position=None) -> Dict[str, Any]:
        name = self._clean_text(name, "name", settings.TOPIC_NAME_MAX_LENGTH)
        description = self._clean_optional_text(description, "description", settings.TOPIC_DESCRIPTION_MAX_LENGTH)
        if position is not None:
            validate_position(position)

        with unit_of_work(self.SessionFactory) as session:
            space = OrderSpace.main(user_id, main_category(session, user_id).id)

            topic = Topic(user_id=user_id, name=name, description=description)
            Sequencer(session).place_new(space, topic, position)

            logger.info(f"created topic {topic.id} at {topic.order}")
            return self._topic_dict(topic)

    def update_topic(self, user_id: str, topic_id, changes: Dict[str, Any]) -> Dict[str, Any]:
        changes = dict(changes or {})
        unknown = set(changes) - TOPIC_UPDATE_FIELDS
        if unknown:
            raise InvalidArgumentError(f"Unknown topic fields: {sorted(unknown)}")

        name = None
        if "name" in changes:
            name = self._clean_text(changes["name"], "name", settings.TOPIC_NAME_MAX_LENGTH)
        if "description" in changes:
            description = self._clean_optional_text(
                changes["description"], "description", settings.TOPIC_DESCRIPTION_MAX_LENGTH
            )
        order = changes.get("order")
        if order is not None:
            validate_position(order)

        with unit_of_work(self.SessionFactory) as session:
            topic = find_topic(session, user_id, topic_id)

            if name is not None:
                topic.name = name
            if "description" in changes:
                topic.description = description

            if order is not None:
                space = OrderSpace.main(user_id, main_category(session, user_id).id)
                Sequencer(session).insert_at_position(space, ItemRef.of(topic), order)

            session.flush()
            return self._topic_dict(topic)

    def delete_topic(self, user_id: str, topic_id) -> None:
        with unit_of_work(self.SessionFactory) as session:
            topic = find_topic(session, user_id, topic_id)
            Sequencer(session).remove(ItemRef.of(topic))
        logger.info(f"deleted topic {topic_id}")

    def bulk_reorder_topics(self, user_id: str, entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        pairs = self._parse_reorder_entries(entries)

        with unit_of_work(self.SessionFactory) as session:
            topics = [(find_topic(session, user_id, item_id), order) for item_id, order in pairs]
            space = OrderSpace.main(user_id, main_category(session, user_id).id)
            written = Sequencer(session).bulk_reorder(
                space, [(ItemRef.of(topic), order) for topic, order in topics]
            )

        return {"message": "Topics reordered successfully", "rows_written": written}

    def get_topic(self, user_id: str, topic_id) -> Dict[str, Any]:
        with unit_of_work(self.SessionFactory) as session:
            return self._topic_dict(find_topic(session, user_id, topic_id))

    def list_topics(self, user_id: str) -> List[Dict[str, Any]]:
        with unit_of_work(self.SessionFactory) as session:
            query = (
                select(Topic)
                .where(Topic.user_id == user_id)
                .order_by(Topic.order, Topic.created_at, Topic.id)
            )
            return [self._topic_dict(t) for t in session.execute(query).scalars()]

    # -----------------------
    # Unified main space
    # -----------------------

    def recalculate_main_space(self, user_id: str) -> Dict[str, Any]:
        with unit_of_work(self.SessionFactory) as session:
            space = OrderSpace.main(user_id, main_category(session, user_id).id)
            written = Sequencer(session).recalculate(space)

        logger.info(f"recalculated main space for {user_id}: {written} rows written")
        return {"message": "Orders recalculated successfully", "rows_written": written}

    def insert_at_position(self, user_id: str, kind, item_id, position) -> Dict[str, Any]:
        """
        Place a slip or topic in the main space at `position`. A slip from
        another category is moved into MAIN as part of the same transaction.
        """
        kind = ItemKind.parse(kind)
        validate_position(position)

        with unit_of_work(self.SessionFactory) as session:
            item = find_item(session, user_id, kind, item_id)
            space = OrderSpace.main(user_id, main_category(session, user_id).id)
            written = Sequencer(session).insert_at_position(space, item, position)

        return {"message": "Item positioned successfully", "rows_written": written}

    def list_main_space(self, user_id: str) -> List[Dict[str, Any]]:
        with unit_of_work(self.SessionFactory) as session:
            space = OrderSpace.main(user_id, main_category(session, user_id).id)
            return [self._item_dict(item) for item in members(session, space)]

    # -----------------------
    # Categories / overview
    # -----------------------

    def list_categories(self, user_id: str) -> List[Dict[str, Any]]:
        with unit_of_work(self.SessionFactory) as session:
            query = select(Category).where(Category.user_id == user_id).order_by(Category.name)
            return [self._category_dict(c) for c in session.execute(query).scalars()]

    def dashboard(self, user_id: str) -> Dict[str, Any]:
        return {
            "slips": self.list_slips(user_id),
            "categories": self.list_categories(user_id),
            "topics": self.list_topics(user_id),
        }

    # -----------------------
    # Helpers
    # -----------------------

    def _space_for_category(self, session: Session, user_id: str, category: Category) -> OrderSpace:
        main = main_category(session, user_id)
        return OrderSpace.for_category(user_id, category, main.id)

    def _clean_text(self, value, field: str, max_length: int) -> str:
        if not isinstance(value, str):
            raise InvalidArgumentError(f"{field} is required and must be a string")
        value = value.strip()
        if not value:
            raise InvalidArgumentError(f"{field} must not be empty")
        if len(value) > max_length:
            raise InvalidArgumentError(f"{field} must be at most {max_length} characters")
        return value

    def _clean_optional_text(self, value, field: str, max_length: int) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise InvalidArgumentError(f"{field} must be a string")
        value = value.strip()
        if len(value) > max_length:
            raise InvalidArgumentError(f"{field} must be at most {max_length} characters")
        return value or None

    def _parse_reorder_entries(self, entries) -> List[tuple]:
        if not isinstance(entries, list) or not entries:
            raise InvalidArgumentError("Reorder payload must be a non-empty list")

        pairs = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise InvalidArgumentError(f"Entry {i} must be an object with 'id' and 'order'")
            item_id = entry.get("id")
            if item_id is None or str(item_id).strip() == "":
                raise InvalidArgumentError(f"Entry {i} is missing 'id'")
            if "order" not in entry:
                raise InvalidArgumentError(f"Entry {i} is missing 'order'")
            pairs.append((str(item_id), validate_position(entry["order"])))
        return pairs

    def _slip_dict(self, slip: Slip) -> Dict[str, Any]:
        return {
            "id": slip.id,
            "kind": ItemKind.SLIP.value,
            "content": slip.content,
            "category_id": slip.category_id,
            "order": slip.order,
            "created_at": slip.created_at.isoformat() if slip.created_at else None,
            "updated_at": slip.updated_at.isoformat() if slip.updated_at else None,
        }

    def _topic_dict(self, topic: Topic) -> Dict[str, Any]:
        return {
            "id": topic.id,
            "kind": ItemKind.TOPIC.value,
            "name": topic.name,
            "description": topic.description,
            "order": topic.order,
            "created_at": topic.created_at.isoformat() if topic.created_at else None,
            "updated_at": topic.updated_at.isoformat() if topic.updated_at else None,
        }

    def _category_dict(self, category: Category) -> Dict[str, Any]:
        return {
            "id": category.id,
            "name": category.name,
            "description": category.description,
            "is_main": category.is_main,
        }

    def _item_dict(self, item: ItemRef) -> Dict[str, Any]:
        if item.kind is ItemKind.SLIP:
            return self._slip_dict(item.row)
        return self._topic_dict(item.row)

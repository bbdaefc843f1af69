# slipbox/sequencer.py
"""
The ordering engine.

Every order space is kept dense and 0-based: a space of n items holds exactly
the orders 0..n-1 once the surrounding transaction commits. The Sequencer is
the only code that writes `order` or a slip's `category_id`; callers open the
transaction (see `slipbox.transaction.unit_of_work`) and hand in its session.

Rows are renumbered in two steps because the store checks uniqueness on every
single UPDATE:
  1) each row whose order is about to change is parked on its own negative
     placeholder and flushed
  2) the final orders are written and flushed
Placeholders are never valid orders and never survive a commit.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from slipbox.errors import ConflictOnConstraintError, InvalidArgumentError, NotFoundError
from slipbox.order_space import (
    ItemKind,
    ItemRef,
    OrderSpace,
    members,
    next_position,
    space_for,
)

logger = logging.getLogger("slipbox_backend")

# order carried by a row that has been inserted or detached but not yet placed
PENDING_ORDER = -1


def _placeholder(n: int) -> int:
    return PENDING_ORDER - 1 - n


def validate_position(value) -> int:
    # bool is an int subclass, but True is not a position
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"Position must be an integer >= 0, got {value!r}")
    if value < 0:
        raise InvalidArgumentError(f"Position must be an integer >= 0, got {value}")
    return value


class Sequencer:
    def __init__(self, session: Session):
        self.session = session

    # -----------------------
    # Ordering operations
    # -----------------------

    def recalculate(self, space: OrderSpace) -> int:
        """
        Renumber the space 0..n-1 by current order. Only rows whose order
        actually changes are written, so a second call writes nothing.
        Returns the number of rows written.
        """
        items = members(self.session, space)
        written = self._write_orders((item, idx) for idx, item in enumerate(items))
        logger.debug(f"recalculate {space.describe()}: {len(items)} items, {written} rows written")
        return written

    def insert_at_position(self, space: OrderSpace, item: ItemRef, target_index) -> int:
        """
        Take `item` out of the space, splice it back in at `target_index`
        (clamped to [0, n]) and renumber the whole space.

        A slip coming from another space is moved into this one in the same
        step, and the space it left is closed up behind it.
        """
        index = validate_position(target_index)
        self._check_owner(space, item)

        if item.kind is ItemKind.TOPIC and not space.is_main:
            raise InvalidArgumentError("Topics can only be placed in the main space")

        source: Optional[OrderSpace] = None
        vacated = item.order
        if not space.contains(item):
            source = OrderSpace.of_slip(item.row, space.main_category_id)

        self._detach(item)
        if source is not None:
            item.row.category_id = space.category_id
            self.session.flush()

        ordered = members(self.session, space, exclude=item)
        index = min(index, len(ordered))
        ordered.insert(index, item)

        written = self._write_orders((entry, idx) for idx, entry in enumerate(ordered))
        if source is not None:
            logger.info(f"moved slip {item.id} from {source.describe()} to {space.describe()} at {index}")
            written += self._close_gap(source, vacated)

        logger.debug(f"insert_at_position {item.kind.value} {item.id} -> {space.describe()}[{index}]")
        return written

    def bulk_reorder(self, space: OrderSpace, assignments: Iterable[tuple[ItemRef, int]]) -> int:
        """
        Apply caller-computed orders verbatim. Contiguity is the caller's
        business; every item must still belong to the space and no two entries
        may claim the same item or the same order.

        An order still held by an item outside the batch is a conflict. The
        main space spans two tables, so the store cannot catch a slip and a
        topic meeting on one order; the clash is checked here for every space.
        """
        batch = list(assignments)
        if not batch:
            raise InvalidArgumentError("Reorder batch must not be empty")

        seen_items = set()
        seen_orders = set()
        for item, order in batch:
            validate_position(order)
            self._check_owner(space, item)
            if not space.contains(item):
                raise InvalidArgumentError(f"{item.kind.value} {item.id} is not part of {space.describe()}")
            if item.key in seen_items:
                raise InvalidArgumentError(f"{item.kind.value} {item.id} appears twice in the batch")
            if order in seen_orders:
                raise InvalidArgumentError(f"Order {order} is assigned twice in the batch")
            seen_items.add(item.key)
            seen_orders.add(order)

        for member in members(self.session, space):
            if member.key not in seen_items and member.order in seen_orders:
                raise ConflictOnConstraintError(
                    f"Order {member.order} in {space.describe()} is held by {member.kind.value} {member.id}, "
                    f"which is not part of the batch"
                )

        written = self._write_orders(batch)
        logger.debug(f"bulk_reorder {space.describe()}: {len(batch)} entries, {written} rows written")
        return written

    def transfer(self, item: ItemRef, destination: OrderSpace, destination_index=0) -> int:
        """
        Move a slip into `destination` at `destination_index`. Members of the
        destination at or past that index move up by one, the slip takes the
        freed order, and the source space closes its gap.
        """
        index = validate_position(destination_index)
        if item.kind is not ItemKind.SLIP:
            raise InvalidArgumentError("Only slips can be transferred between categories")
        self._check_owner(destination, item)

        if destination.is_main or destination.contains(item):
            return self.insert_at_position(destination, item, index)

        source = OrderSpace.of_slip(item.row, destination.main_category_id)
        vacated = item.order

        self._detach(item)
        item.row.category_id = destination.category_id
        self.session.flush()

        existing = members(self.session, destination, exclude=item)
        index = min(index, len(existing))

        moves = [(member, member.order + 1) for member in existing if member.order >= index]
        moves.append((item, index))
        written = self._write_orders(moves)
        written += self._close_gap(source, vacated)

        logger.info(f"transferred slip {item.id} from {source.describe()} to {destination.describe()} at {index}")
        return written

    def remove(self, item: ItemRef) -> int:
        """
        Delete the item's row and repair its space: the main space is
        recalculated, a category space shifts its later slips down by one.
        """
        space = space_for(self.session, item)
        vacated = item.order

        self.session.delete(item.row)
        self.session.flush()

        written = self._close_gap(space, vacated)
        logger.debug(f"removed {item.kind.value} {item.id} from {space.describe()}, {written} rows written")
        return written

    # -----------------------
    # Creation
    # -----------------------

    def place_new(self, space: OrderSpace, row, position=None) -> int:
        """
        Insert a freshly built row into `space`, at `position` when given or
        after the current last item otherwise.
        """
        if position is not None:
            validate_position(position)
        else:
            position = next_position(self.session, space)

        row.order = PENDING_ORDER
        self.session.add(row)
        self.session.flush()

        return self.insert_at_position(space, ItemRef.of(row), position)

    # -----------------------
    # Internals
    # -----------------------

    def _check_owner(self, space: OrderSpace, item: ItemRef) -> None:
        if item.row.user_id != space.owner_id:
            raise NotFoundError(f"{item.kind.value.capitalize()} not found: {item.id}")

    def _detach(self, item: ItemRef) -> None:
        if item.row.order != PENDING_ORDER:
            item.row.order = PENDING_ORDER
            self.session.flush()

    def _close_gap(self, space: OrderSpace, vacated: int) -> int:
        if space.is_main:
            return self.recalculate(space)
        remaining = members(self.session, space)
        return self._write_orders((m, m.order - 1) for m in remaining if m.order > vacated)

    def _write_orders(self, assignments: Iterable[tuple[ItemRef, int]]) -> int:
        changed = [(item, order) for item, order in assignments if item.row.order != order]
        if not changed:
            return 0

        for n, (item, _) in enumerate(changed):
            item.row.order = _placeholder(n)
        self.session.flush()

        for item, order in changed:
            item.row.order = order
        self.session.flush()

        return len(changed)

# slipbox/category_bootstrap.py
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import commentjson
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from slipbox import settings
from slipbox.entities import Category, User
from slipbox.errors import InvalidArgumentError
from slipbox.transaction import unit_of_work

logger = logging.getLogger("slipbox_backend")


def load_default_categories(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load the default category catalog from a JSON-with-comments file.
    Fails fast if the file is missing or does not name exactly one MAIN.
    """
    cfg_path = Path(path or settings.DEFAULT_CATEGORIES_PATH)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Default categories file not found at '{cfg_path}'.")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    categories = data.get("categories") if isinstance(data, dict) else None
    if not isinstance(categories, list) or not categories:
        raise ValueError("Default categories config missing or invalid key: categories")

    mains = [c for c in categories if c.get("main")]
    if len(mains) != 1:
        raise ValueError(f"Default categories must flag exactly one main category, found {len(mains)}")

    for entry in categories:
        name = (entry.get("name") or "").strip()
        if not name or len(name) > settings.CATEGORY_NAME_MAX_LENGTH:
            raise ValueError(f"Invalid default category name: {entry.get('name')!r}")

    return categories


def ensure_default_categories(session: Session, user_id: str, catalog: Optional[List[Dict[str, Any]]] = None) -> int:
    """
    Create the default categories for `user_id` unless the owner already has
    any. Returns how many rows were created (0 on a repeat call).
    """
    existing = session.execute(
        select(func.count()).select_from(Category).where(Category.user_id == user_id)
    ).scalar_one()
    if existing:
        return 0

    entries = catalog if catalog is not None else load_default_categories()
    for entry in entries:
        session.add(
            Category(
                user_id=user_id,
                name=entry["name"].strip(),
                description=entry.get("description"),
                is_main=bool(entry.get("main", False)),
            )
        )
    session.flush()

    logger.info(f"created {len(entries)} default categories for user {user_id}")
    return len(entries)


def bootstrap_account(session_factory: Callable[[], Session], user_id: str) -> Dict[str, Any]:
    """
    Make sure the user row and its default categories exist. Safe to call any
    number of times.
    """
    user_id = str(user_id or "").strip()
    if not user_id or len(user_id) > 36:
        raise InvalidArgumentError(f"Invalid user id: {user_id!r}")

    with unit_of_work(session_factory) as session:
        user_created = False
        if session.get(User, user_id) is None:
            session.add(User(id=user_id))
            session.flush()
            user_created = True

        created = ensure_default_categories(session, user_id)

    return {
        "user_id": user_id,
        "user_created": user_created,
        "categories_created": created,
    }

# Overview: Service-layer operations for product code allocation.

"""
Product Code Allocator

Product codes are <category code><2-digit sequence>, e.g. MN01..MN99.

ALLOCATION:
- Scan every existing item code (active or not; deactivated items keep
  their code and their ledger history)
- Keep codes that start with the category code and whose remainder is
  exactly two decimal digits
- Return the lowest unused sequence in 1..CODE_SEQUENCE_MAX
- When every sequence is taken, return a random one in the same range

NO RESERVATION: the returned code is a suggestion. The unique index on
inventory_items.code is the source of truth; item_service turns an insert
collision into DuplicateCode and re-allocates.
"""
from __future__ import annotations

import logging
import random
import re

from flask import current_app

from ..errors import InvalidCategory
from ..extensions import db
from ..models import Category, InventoryItem

logger = logging.getLogger(__name__)

MAX_CATEGORY_CODE_LENGTH = 3
SEQUENCE_PATTERN = re.compile(r"^\d{2}$")


def normalize_category_code(category_code: str | None) -> str:
    code = (category_code or "").strip()
    if not code:
        raise InvalidCategory("Category code is required to allocate a product code")
    if len(code) > MAX_CATEGORY_CODE_LENGTH:
        raise InvalidCategory(
            f"Category code {code!r} is longer than {MAX_CATEGORY_CODE_LENGTH} characters"
        )
    return code


def code_for_category_name(name: str) -> str | None:
    """Category lookup: the short code registered for a category name."""
    category = db.session.query(Category).filter_by(name=(name or "").strip()).first()
    return category.code if category else None


def resolve_category_code(category_name: str | None) -> str:
    """
    Category name -> category code.

    Unregistered names fall back to their first three characters so items
    can be created before the category table is curated.
    """
    name = (category_name or "").strip()
    if not name:
        raise InvalidCategory("Category is required")
    code = code_for_category_name(name)
    if code:
        return code
    return name[:MAX_CATEGORY_CODE_LENGTH]


def used_sequences(category_code: str, codes) -> set[int]:
    used = set()
    for code in codes:
        if not code.startswith(category_code):
            continue
        suffix = code[len(category_code):]
        if SEQUENCE_PATTERN.match(suffix):
            used.add(int(suffix))
    return used


def allocate_code(category_code: str) -> str:
    """
    Suggest the next product code for a category.

    Pure read: two calls with no item created in between return the same code.
    """
    category_code = normalize_category_code(category_code)
    max_sequence = current_app.config.get("CODE_SEQUENCE_MAX", 99)

    codes = [
        row.code
        for row in db.session.query(InventoryItem.code)
        .filter(InventoryItem.code.like(f"{category_code}%"))
        .all()
    ]
    used = used_sequences(category_code, codes)

    for sequence in range(1, max_sequence + 1):
        if sequence not in used:
            return f"{category_code}{sequence:02d}"

    sequence = random.randint(1, max_sequence)
    logger.warning(
        "all %d sequences taken for category %s, using random sequence %02d",
        max_sequence, category_code, sequence,
    )
    return f"{category_code}{sequence:02d}"

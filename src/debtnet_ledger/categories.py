from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class Category(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    FAMILY = "family"
    FRIEND = "friend"
    OTHER = "other"


class Direction(str, Enum):
    OWED_TO_USER = "owedToUser"
    OWED_BY_USER = "owedByUser"


@dataclass(frozen=True)
class CategoryInfo:
    category: Category
    display_name: str


# Display order matches the category picker.
CATEGORIES: Mapping[Category, CategoryInfo] = {
    Category.PERSONAL: CategoryInfo(category=Category.PERSONAL, display_name="Personal"),
    Category.BUSINESS: CategoryInfo(category=Category.BUSINESS, display_name="Business"),
    Category.FAMILY: CategoryInfo(category=Category.FAMILY, display_name="Family"),
    Category.FRIEND: CategoryInfo(category=Category.FRIEND, display_name="Friend"),
    Category.OTHER: CategoryInfo(category=Category.OTHER, display_name="Other"),
}

DIRECTION_LABELS: Mapping[Direction, str] = {
    Direction.OWED_TO_USER: "Owed to me",
    Direction.OWED_BY_USER: "I owe",
}

# Short forms accepted from the command line.
_DIRECTION_ALIASES: Mapping[str, Direction] = {
    "owedtouser": Direction.OWED_TO_USER,
    "owed-to-me": Direction.OWED_TO_USER,
    "to-me": Direction.OWED_TO_USER,
    "owedbyuser": Direction.OWED_BY_USER,
    "i-owe": Direction.OWED_BY_USER,
    "by-me": Direction.OWED_BY_USER,
}


def category_label(category: Category) -> str:
    return CATEGORIES[Category(category)].display_name


def direction_label(direction: Direction) -> str:
    return DIRECTION_LABELS[Direction(direction)]


def parse_category(value: str) -> Category:
    s = (value or "").strip().lower()
    if not s:
        return Category.OTHER
    for info in CATEGORIES.values():
        if s in (info.category.value, info.display_name.lower()):
            return info.category
    raise ValueError(f"unknown category {value!r} (expected one of: {', '.join(c.value for c in Category)})")


def parse_direction(value: str) -> Direction:
    s = (value or "").strip().lower().replace("_", "-")
    try:
        return _DIRECTION_ALIASES[s]
    except KeyError:
        raise ValueError(f"unknown direction {value!r} (expected 'owed-to-me' or 'i-owe')") from None

"""Category domain entity - generates events for category operations"""
from typing import Dict, Any

DEFAULT_CATEGORY_COLOR = "#6366f1"


class Category:
    @staticmethod
    def create(user_id: int, category_id: int, name: str, color: str | None) -> Dict[str, Any]:
        return {
            "category_id": category_id,
            "user_id": user_id,
            "name": name,
            "color": color,
        }

    @staticmethod
    def delete(category_id: int, replacement_category_id: int | None, entries_reassigned: int) -> Dict[str, Any]:
        return {
            "category_id": category_id,
            "replacement_category_id": replacement_category_id,
            "entries_reassigned": entries_reassigned,
        }

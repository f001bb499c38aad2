"""
Category lookups, always scoped to the owning user
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from chronoflow.infrastructure.db.models import Category


class CategoryRepository:

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: int, category_id: int) -> Optional[Category]:
        return self.db.query(Category).filter(
            Category.id == category_id,
            Category.user_id == user_id,
        ).first()

    def find_by_name(self, user_id: int, name: str) -> Optional[Category]:
        """Exact, case-sensitive name match"""
        return self.db.query(Category).filter(
            Category.user_id == user_id,
            Category.name == name,
        ).first()

    def list_for_user(self, user_id: int) -> List[Category]:
        return self.db.query(Category).filter(
            Category.user_id == user_id
        ).order_by(Category.name.asc()).all()

    def add(self, category: Category) -> Category:
        self.db.add(category)
        self.db.flush()
        return category

    def delete(self, category: Category) -> None:
        self.db.delete(category)
        self.db.flush()

"""
Category use cases

Categories belong to one user and are referenced by time entries. Only
the small surface the time tracker needs: list, create, and delete with
reassignment of the entries to a replacement category.
"""
import logging
from typing import List

from sqlalchemy.exc import IntegrityError

from chronoflow.application.sync_notifications import notify_sync
from chronoflow.application.time_entries import TimeEntryUseCase
from chronoflow.domain.category import Category as CategoryDomain, DEFAULT_CATEGORY_COLOR
from chronoflow.domain.errors import InvalidArgumentError, NotFoundError
from chronoflow.infrastructure.categories.repository import CategoryRepository
from chronoflow.infrastructure.db.models import Category
from chronoflow.infrastructure.sync.wire import SYNC_TYPE_ALL, SYNC_TYPE_CATEGORIES

logger = logging.getLogger(__name__)

MAX_CATEGORY_NAME_LENGTH = 255


def list_categories(db, user_id: int) -> List[Category]:
    return CategoryRepository(db).list_for_user(user_id)


class CreateCategoryUseCase(TimeEntryUseCase):
    """Use case: create a category (name unique per user, exact match)"""

    def execute(self, user_id: int, name: str, color: str | None = None,
                actor_user_id: int | None = None) -> Category:
        if not isinstance(name, str) or not name.strip():
            raise InvalidArgumentError("Category name is required")
        name = name.strip()
        if len(name) > MAX_CATEGORY_NAME_LENGTH:
            raise InvalidArgumentError(f"Category name must be {MAX_CATEGORY_NAME_LENGTH} characters or less")
        color = (color or "").strip() or DEFAULT_CATEGORY_COLOR

        if self.categories.find_by_name(user_id, name) is not None:
            raise InvalidArgumentError("Category already exists")

        try:
            category = self.categories.add(Category(user_id=user_id, name=name, color=color))
            self.event_repo.append_event(
                account_id=user_id,
                event_type="category_created",
                payload=CategoryDomain.create(user_id, category.id, name, color),
                occurred_at=self._now(),
                actor_user_id=actor_user_id,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidArgumentError("Category already exists")

        logger.info("Category created: category_id=%s user_id=%s", category.id, user_id)
        notify_sync(self.broadcaster, user_id, SYNC_TYPE_CATEGORIES)
        return category


class DeleteCategoryUseCase(TimeEntryUseCase):
    """
    Use case: delete a category.

    If entries still reference it, replacement_category_id is mandatory and
    those entries are moved there in the same transaction.
    """

    def execute(self, user_id: int, category_id: int, replacement_category_id: int | None = None,
                actor_user_id: int | None = None) -> int:
        category = self.categories.find(user_id, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        replacement = None
        if replacement_category_id is not None:
            if replacement_category_id == category_id:
                raise InvalidArgumentError("Replacement category must differ from the deleted one")
            replacement = self._require_category(user_id, replacement_category_id)

        with self.locks.hold(user_id):
            in_use = self.entries.count_for_category(user_id, category_id)
            if in_use and replacement is None:
                raise InvalidArgumentError("Category has time entries; a replacement category is required")

            try:
                reassigned = 0
                if in_use:
                    reassigned = self.entries.reassign_category(user_id, category_id, replacement.id)
                self.categories.delete(category)
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="category_deleted",
                    payload=CategoryDomain.delete(category_id, replacement.id if replacement else None, reassigned),
                    occurred_at=self._now(),
                    actor_user_id=actor_user_id,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("Category deleted: category_id=%s user_id=%s reassigned=%d",
                    category_id, user_id, reassigned)
        notify_sync(self.broadcaster, user_id, SYNC_TYPE_CATEGORIES)
        if reassigned:
            notify_sync(self.broadcaster, user_id, SYNC_TYPE_ALL)
        return reassigned

"""
Task-name reconciliation use cases

A "task" is the set of entries sharing one exact task_name string, so
renaming or merging tasks is a bulk rewrite of time_entries. Each use case
runs in one transaction and broadcasts a single time-entries event.
"""
import logging
from typing import Dict, List

from chronoflow.application.time_entries import TimeEntryUseCase
from chronoflow.domain.errors import InvalidArgumentError, NotFoundError
from chronoflow.domain.task_names import TaskNames, dedupe_names

logger = logging.getLogger(__name__)


def _clean(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError("Task and category names must be strings")
    return value.strip() or None


class MergeTaskNamesUseCase(TimeEntryUseCase):
    """
    Rewrite every entry named like one of source_task_names to
    target_task_name. If target_category_name resolves to one of the user's
    categories the entries are moved there too; an unknown name is ignored.
    """

    def execute(
        self,
        user_id: int,
        source_task_names: List[str],
        target_task_name: str,
        target_category_name: str | None = None,
        actor_user_id: int | None = None,
    ) -> Dict:
        if not isinstance(source_task_names, list):
            raise InvalidArgumentError("sourceTaskNames must be a non-empty list")
        sources = dedupe_names(source_task_names)
        target = _clean(target_task_name)
        if not sources or target is None:
            raise InvalidArgumentError("Source task names and target task name are required")
        target = self._task_name(target)

        category_name = _clean(target_category_name)
        target_category_id = None
        if category_name is not None:
            category = self.categories.find_by_name(user_id, category_name)
            if category is not None:
                target_category_id = category.id

        with self.locks.hold(user_id):
            if self.entries.count_by_task_names(user_id, sources) == 0:
                raise NotFoundError("No entries found with the specified task names")

            try:
                updated = self.entries.rewrite_task_names(user_id, sources, target, target_category_id)
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="task_names_merged",
                    payload=TaskNames.merged(sources, target, target_category_id, updated),
                    occurred_at=self._now(),
                    actor_user_id=actor_user_id,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("Merged task names: user_id=%s sources=%d target=%r entries=%d",
                    user_id, len(sources), target, updated)
        self._notify(user_id)
        return {
            "merged": len(sources),
            "entriesUpdated": updated,
            "targetTaskName": target,
        }


class BulkUpdateTaskNameUseCase(TimeEntryUseCase):
    """
    Rename and/or recategorise every entry matching (old_task_name,
    old_category_name) exactly. Category names must resolve.
    """

    def execute(
        self,
        user_id: int,
        old_task_name: str,
        old_category_name: str,
        new_task_name: str | None = None,
        new_category_name: str | None = None,
        actor_user_id: int | None = None,
    ) -> Dict:
        old_name = _clean(old_task_name)
        old_category_name = _clean(old_category_name)
        if old_name is None or old_category_name is None:
            raise InvalidArgumentError("Old task name and old category name are required")

        new_name = _clean(new_task_name)
        new_category_name = _clean(new_category_name)
        if new_name is None and new_category_name is None:
            raise InvalidArgumentError("Provide a new task name or a new category name")
        if new_name is not None:
            new_name = self._task_name(new_name)

        old_category = self.categories.find_by_name(user_id, old_category_name)
        if old_category is None:
            raise NotFoundError("Old category not found")

        new_category = old_category
        if new_category_name is not None:
            new_category = self.categories.find_by_name(user_id, new_category_name)
            if new_category is None:
                raise NotFoundError("New category not found")

        final_name = new_name if new_name is not None else old_name

        with self.locks.hold(user_id):
            if self.entries.count_by_task_name_and_category(user_id, old_name, old_category.id) == 0:
                raise NotFoundError("No entries found with the specified task name and category")

            try:
                updated = self.entries.rewrite_task_name_and_category(
                    user_id, old_name, old_category.id, final_name, new_category.id,
                )
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="task_name_bulk_updated",
                    payload=TaskNames.bulk_updated(old_name, old_category.id, final_name,
                                                   new_category.id, updated),
                    occurred_at=self._now(),
                    actor_user_id=actor_user_id,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("Bulk task rename: user_id=%s %r/%s -> %r/%s entries=%d",
                    user_id, old_name, old_category.id, final_name, new_category.id, updated)
        self._notify(user_id)
        return {"entriesUpdated": updated}

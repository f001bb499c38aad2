"""Tests for task-name merge and bulk rename"""
from datetime import datetime, timedelta, timezone

import pytest

from chronoflow.application.task_names import BulkUpdateTaskNameUseCase, MergeTaskNamesUseCase
from chronoflow.domain.errors import InvalidArgumentError, NotFoundError
from chronoflow.infrastructure.db.models import EventLog, TimeEntry

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _entry(db, user, category, task_name, day=0):
    e = TimeEntry(
        user_id=user.id, category_id=category.id, task_name=task_name,
        start_time=T0 + timedelta(days=day), end_time=T0 + timedelta(days=day, minutes=30),
        duration_minutes=30,
    )
    db.add(e)
    db.commit()
    return e


def _named(db, user_id, name):
    return db.query(TimeEntry).filter(TimeEntry.user_id == user_id, TimeEntry.task_name == name).all()


class TestMerge:
    def test_merge_rewrites_every_source(self, db_session, user, work, broadcaster, locks):
        _entry(db_session, user, work, "Bug fix", 0)
        _entry(db_session, user, work, "Bug fix", 1)
        _entry(db_session, user, work, "bugfix", 2)
        _entry(db_session, user, work, "Bug Fixing", 3)
        _entry(db_session, user, work, "Unrelated", 4)

        result = MergeTaskNamesUseCase(db_session, broadcaster, locks=locks).execute(
            user.id, ["Bug fix", "bugfix"], "Bug Fixing",
        )

        assert result == {"merged": 2, "entriesUpdated": 3, "targetTaskName": "Bug Fixing"}
        assert _named(db_session, user.id, "Bug fix") == []
        assert _named(db_session, user.id, "bugfix") == []
        assert len(_named(db_session, user.id, "Bug Fixing")) == 4
        assert len(_named(db_session, user.id, "Unrelated")) == 1
        assert broadcaster.event_counter == 1

    def test_match_is_case_sensitive(self, db_session, user, work, locks):
        _entry(db_session, user, work, "bug fix")
        with pytest.raises(NotFoundError):
            MergeTaskNamesUseCase(db_session, locks=locks).execute(user.id, ["Bug fix"], "Bugs")

    def test_padded_source_names_match_stored_names(self, db_session, user, work, locks):
        _entry(db_session, user, work, "Bug fix")
        result = MergeTaskNamesUseCase(db_session, locks=locks).execute(user.id, [" Bug fix  "], "Bugs")
        assert result == {"merged": 1, "entriesUpdated": 1, "targetTaskName": "Bugs"}
        assert len(_named(db_session, user.id, "Bugs")) == 1

    def test_target_category_moves_entries(self, db_session, user, work, personal, locks):
        _entry(db_session, user, work, "Reading")
        MergeTaskNamesUseCase(db_session, locks=locks).execute(
            user.id, ["Reading"], "Books", target_category_name="Personal",
        )
        assert [e.category_id for e in _named(db_session, user.id, "Books")] == [personal.id]

    def test_unknown_target_category_is_ignored(self, db_session, user, work, locks):
        _entry(db_session, user, work, "Reading")
        result = MergeTaskNamesUseCase(db_session, locks=locks).execute(
            user.id, ["Reading"], "Books", target_category_name="Nope",
        )
        assert result["entriesUpdated"] == 1
        assert [e.category_id for e in _named(db_session, user.id, "Books")] == [work.id]

    def test_other_users_entries_untouched(self, db_session, user, other_user, work, foreign_category, locks):
        _entry(db_session, user, work, "Standup")
        theirs = _entry(db_session, other_user, foreign_category, "Standup")

        MergeTaskNamesUseCase(db_session, locks=locks).execute(user.id, ["Standup"], "Meetings")

        db_session.refresh(theirs)
        assert theirs.task_name == "Standup"

    @pytest.mark.parametrize("sources, target", [([], "X"), (["A"], ""), (["A"], None), ([""], "X"), (["   "], "X")])
    def test_invalid_input(self, db_session, user, locks, sources, target):
        with pytest.raises(InvalidArgumentError):
            MergeTaskNamesUseCase(db_session, locks=locks).execute(user.id, sources, target)

    def test_no_matches(self, db_session, user, work, locks):
        with pytest.raises(NotFoundError):
            MergeTaskNamesUseCase(db_session, locks=locks).execute(user.id, ["Ghost"], "Target")
        assert db_session.query(EventLog).count() == 0


class TestBulkUpdate:
    def test_rename_within_category(self, db_session, user, work, personal, locks, broadcaster):
        _entry(db_session, user, work, "Emails", 0)
        _entry(db_session, user, work, "Emails", 1)
        other_category = _entry(db_session, user, personal, "Emails", 2)

        result = BulkUpdateTaskNameUseCase(db_session, broadcaster, locks=locks).execute(
            user.id, "Emails", "Work", new_task_name="Inbox zero",
        )

        assert result == {"entriesUpdated": 2}
        db_session.refresh(other_category)
        assert other_category.task_name == "Emails"
        assert broadcaster.event_counter == 1

    def test_move_to_new_category_only(self, db_session, user, work, personal, locks):
        _entry(db_session, user, work, "Gym")
        BulkUpdateTaskNameUseCase(db_session, locks=locks).execute(
            user.id, "Gym", "Work", new_category_name="Personal",
        )
        moved = _named(db_session, user.id, "Gym")
        assert [e.category_id for e in moved] == [personal.id]

    def test_needs_a_new_value(self, db_session, user, work, locks):
        with pytest.raises(InvalidArgumentError):
            BulkUpdateTaskNameUseCase(db_session, locks=locks).execute(user.id, "Gym", "Work")

    def test_unknown_old_category(self, db_session, user, work, locks):
        with pytest.raises(NotFoundError, match="Old category"):
            BulkUpdateTaskNameUseCase(db_session, locks=locks).execute(
                user.id, "Gym", "Nope", new_task_name="x",
            )

    def test_unknown_new_category(self, db_session, user, work, locks):
        _entry(db_session, user, work, "Gym")
        with pytest.raises(NotFoundError, match="New category"):
            BulkUpdateTaskNameUseCase(db_session, locks=locks).execute(
                user.id, "Gym", "Work", new_category_name="Nope",
            )

    def test_no_matching_pair(self, db_session, user, work, personal, locks):
        _entry(db_session, user, personal, "Gym")
        with pytest.raises(NotFoundError, match="No entries"):
            BulkUpdateTaskNameUseCase(db_session, locks=locks).execute(
                user.id, "Gym", "Work", new_task_name="Workout",
            )

"""
Time entry API endpoints
"""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from chronoflow.api.deps import get_broadcaster, get_current_user_id, get_db
from chronoflow.application.scheduled_stop import ClearScheduleUseCase, ScheduleStopUseCase
from chronoflow.application.task_names import BulkUpdateTaskNameUseCase, MergeTaskNamesUseCase
from chronoflow.application.time_entries import (
    CreateTimeEntryUseCase,
    DeleteTimeEntriesByDateUseCase,
    DeleteTimeEntryUseCase,
    StartTimeEntryUseCase,
    StopTimeEntryUseCase,
    UpdateTimeEntryUseCase,
    get_active_time_entry,
    list_task_suggestions,
    list_time_entries,
)
from chronoflow.infrastructure.db.models import TimeEntry
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster
from chronoflow.utils.timestamps import as_utc


router = APIRouter(prefix="/time-entries", tags=["time-entries"])


# === Request/Response models ===

class StartEntryRequest(BaseModel):
    category_id: Optional[int] = None
    task_name: Optional[str] = None


class CreateEntryRequest(BaseModel):
    category_id: Optional[int] = None
    task_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class UpdateEntryRequest(BaseModel):
    category_id: Optional[int] = None
    task_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None  # explicit null reopens the entry


class ScheduleStopRequest(BaseModel):
    scheduled_end_time: Optional[datetime] = None


class MergeTaskNamesRequest(BaseModel):
    sourceTaskNames: List[str] = []
    targetTaskName: Optional[str] = None
    targetCategoryName: Optional[str] = None


class BulkUpdateTaskNameRequest(BaseModel):
    oldTaskName: Optional[str] = None
    oldCategoryName: Optional[str] = None
    newTaskName: Optional[str] = None
    newCategoryName: Optional[str] = None


class TimeEntryResponse(BaseModel):
    id: int
    user_id: int
    category_id: int
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    task_name: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: TimeEntry) -> "TimeEntryResponse":
        category = entry.category
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            category_id=entry.category_id,
            category_name=category.name if category is not None else None,
            category_color=category.color if category is not None else None,
            task_name=entry.task_name,
            start_time=as_utc(entry.start_time),
            end_time=as_utc(entry.end_time),
            scheduled_end_time=as_utc(entry.scheduled_end_time),
            duration_minutes=entry.duration_minutes,
            created_at=as_utc(entry.created_at),
        )


class TaskSuggestionResponse(BaseModel):
    task_name: str
    categoryId: int
    count: int
    totalMinutes: int
    lastUsed: Optional[datetime] = None


# === Endpoints (fixed paths before /{entry_id}) ===

@router.get("", response_model=List[TimeEntryResponse])
def list_entries(
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    categoryId: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Entries newest first, optionally filtered"""
    entries = list_time_entries(
        db, user_id,
        limit=limit, offset=offset,
        start_date=startDate, end_date=endDate,
        category_id=categoryId, search=search,
    )
    return [TimeEntryResponse.from_entry(e) for e in entries]


@router.get("/active", response_model=Optional[TimeEntryResponse])
def get_active(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """The running timer, or null"""
    entry = get_active_time_entry(db, user_id)
    return TimeEntryResponse.from_entry(entry) if entry is not None else None


@router.get("/suggestions", response_model=List[TaskSuggestionResponse])
def suggestions(
    categoryId: Optional[int] = Query(None, ge=1),
    q: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rows = list_task_suggestions(db, user_id, category_id=categoryId, q=q, limit=limit)
    return [TaskSuggestionResponse(**row) for row in rows]


@router.post("/start", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
def start_entry(
    req: StartEntryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Start a timer; a running one is stopped first"""
    entry = StartTimeEntryUseCase(db, broadcaster).execute(
        user_id=user_id,
        category_id=req.category_id,
        task_name=req.task_name,
        actor_user_id=user_id,
    )
    return TimeEntryResponse.from_entry(entry)


@router.post("/merge-task-names")
def merge_task_names(
    req: MergeTaskNamesRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    return MergeTaskNamesUseCase(db, broadcaster).execute(
        user_id=user_id,
        source_task_names=req.sourceTaskNames,
        target_task_name=req.targetTaskName,
        target_category_name=req.targetCategoryName,
        actor_user_id=user_id,
    )


@router.post("/update-task-name-bulk")
def update_task_name_bulk(
    req: BulkUpdateTaskNameRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    return BulkUpdateTaskNameUseCase(db, broadcaster).execute(
        user_id=user_id,
        old_task_name=req.oldTaskName,
        old_category_name=req.oldCategoryName,
        new_task_name=req.newTaskName,
        new_category_name=req.newCategoryName,
        actor_user_id=user_id,
    )


@router.delete("/by-date/{day}")
def delete_by_date(
    day: date,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Delete completed entries that started on a given UTC day"""
    deleted = DeleteTimeEntriesByDateUseCase(db, broadcaster).execute(user_id, day, actor_user_id=user_id)
    return {"deleted": deleted}


@router.post("", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
def create_entry(
    req: CreateEntryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Manual entry with both timestamps"""
    entry = CreateTimeEntryUseCase(db, broadcaster).execute(
        user_id=user_id,
        category_id=req.category_id,
        task_name=req.task_name,
        start_time=req.start_time,
        end_time=req.end_time,
        actor_user_id=user_id,
    )
    return TimeEntryResponse.from_entry(entry)


@router.post("/{entry_id}/stop", response_model=TimeEntryResponse)
def stop_entry(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    entry = StopTimeEntryUseCase(db, broadcaster).execute(user_id, entry_id, actor_user_id=user_id)
    return TimeEntryResponse.from_entry(entry)


@router.post("/{entry_id}/schedule-stop", response_model=TimeEntryResponse)
def schedule_stop(
    entry_id: int,
    req: ScheduleStopRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Stop the running entry automatically at a future instant"""
    entry = ScheduleStopUseCase(db, broadcaster).execute(
        user_id, entry_id, req.scheduled_end_time, actor_user_id=user_id,
    )
    return TimeEntryResponse.from_entry(entry)


@router.delete("/{entry_id}/schedule-stop", response_model=TimeEntryResponse)
def clear_schedule(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    entry = ClearScheduleUseCase(db, broadcaster).execute(user_id, entry_id, actor_user_id=user_id)
    return TimeEntryResponse.from_entry(entry)


@router.put("/{entry_id}", response_model=TimeEntryResponse)
def update_entry(
    entry_id: int,
    req: UpdateEntryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Partial update; an explicit "end_time": null reopens the entry"""
    end_time = ...
    if "end_time" in req.model_fields_set:
        end_time = req.end_time

    entry = UpdateTimeEntryUseCase(db, broadcaster).execute(
        user_id=user_id,
        entry_id=entry_id,
        category_id=req.category_id,
        task_name=req.task_name,
        start_time=req.start_time,
        end_time=end_time,
        actor_user_id=user_id,
    )
    return TimeEntryResponse.from_entry(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    entry_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    DeleteTimeEntryUseCase(db, broadcaster).execute(user_id, entry_id, actor_user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

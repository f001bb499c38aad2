"""
Category API endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from chronoflow.api.deps import get_broadcaster, get_current_user_id, get_db
from chronoflow.application.categories import CreateCategoryUseCase, DeleteCategoryUseCase, list_categories
from chronoflow.domain.errors import InvalidArgumentError
from chronoflow.infrastructure.db.models import Category
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster
from chronoflow.utils.validation import parse_int_param


router = APIRouter(prefix="/categories", tags=["categories"])


class CreateCategoryRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: Optional[str] = None

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(id=category.id, name=category.name, color=category.color)


@router.get("", response_model=List[CategoryResponse])
def get_categories(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return [CategoryResponse.from_category(c) for c in list_categories(db, user_id)]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    req: CreateCategoryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    category = CreateCategoryUseCase(db, broadcaster).execute(
        user_id=user_id, name=req.name, color=req.color, actor_user_id=user_id,
    )
    return CategoryResponse.from_category(category)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    replacement_category_id: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Delete a category; entries using it move to replacement_category_id"""
    try:
        replacement = parse_int_param(replacement_category_id, "replacement_category_id", None, minimum=1)
    except ValueError as e:
        raise InvalidArgumentError(str(e))

    DeleteCategoryUseCase(db, broadcaster).execute(
        user_id, category_id, replacement_category_id=replacement, actor_user_id=user_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

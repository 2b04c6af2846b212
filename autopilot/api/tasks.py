"""Task API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from autopilot.core.auth import verify_api_key
from autopilot.core.errors import NotFoundError
from autopilot.models import Task, TaskCategory, TaskStatus, TaskType
from autopilot.services import TaskService

router = APIRouter()


class TaskCreate(BaseModel):
    """Request model for a manually queued task."""

    type: TaskType
    title: str = Field(min_length=1, max_length=200)
    category: TaskCategory
    priority: int = Field(default=5, ge=1, le=10)
    description: str | None = None
    max_attempts: int | None = Field(default=None, ge=1)


class TaskResponse(BaseModel):
    """Response model for task data."""

    id: UUID
    type: str
    category: str
    priority: int
    status: str
    title: str
    description: str | None
    progress: int
    attempts: int
    max_attempts: int
    result: dict[str, Any] | None
    error: str | None
    related_finding_id: UUID | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


class TaskListResponse(BaseModel):
    """Response model for list of tasks."""

    tasks: list[TaskResponse]
    total: int
    limit: int
    offset: int


def to_response(task: Task) -> TaskResponse:
    return TaskResponse.model_validate(task, from_attributes=True)


@router.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(task_data: TaskCreate, api_key: str = Depends(verify_api_key)):
    """Queue a task that did not come from a finding."""
    task = TaskService.create_task(
        type=task_data.type,
        title=task_data.title,
        category=task_data.category,
        priority=task_data.priority,
        description=task_data.description,
        max_attempts=task_data.max_attempts,
    )
    return to_response(task)


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: UUID, api_key: str = Depends(verify_api_key)):
    """Get a task by ID."""
    try:
        task = TaskService.get_task_by_id(task_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    return to_response(task)


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    status: TaskStatus | None = None,
    type: TaskType | None = None,
    category: TaskCategory | None = None,
    limit: int = 100,
    offset: int = 0,
    api_key: str = Depends(verify_api_key),
):
    """List tasks, newest first, with optional filters."""
    tasks, total = TaskService.list_tasks(
        status=status, type=type, category=category, limit=limit, offset=offset
    )

    return TaskListResponse(
        tasks=[to_response(task) for task in tasks],
        total=total,
        limit=limit,
        offset=offset,
    )

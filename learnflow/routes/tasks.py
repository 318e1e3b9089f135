from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from learnflow.core.auth_guard import get_current_user_from_request
from learnflow.db.session import get_db
from learnflow.schemas.progress import CompletionToggle, TaskRead
from learnflow.services.progress_engine import progress_engine

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.put("/{task_id}/complete")
def complete_task(
    task_id: int,
    body: CompletionToggle,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    task = progress_engine.toggle_task(db, user_id, task_id, body.completed)
    return {
        "message": "Task completed" if body.completed else "Task marked as not completed",
        "task": TaskRead.model_validate(task).model_dump(),
    }

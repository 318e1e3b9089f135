from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from learnflow.core.auth_guard import get_current_user_from_request
from learnflow.db.session import get_db
from learnflow.schemas.progress import AITaskCompletionRead, BatchCompletionToggle, CompletionToggle
from learnflow.services.progress_engine import progress_engine

router = APIRouter(prefix="/api/ai-tasks", tags=["ai-tasks"])


@router.get("/{plan_id}")
def get_completions(plan_id: int, request: Request, db: Session = Depends(get_db)):
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    completions = progress_engine.get_ai_task_completions(db, user_id, plan_id)
    return {"success": True, "completions": completions}


# Registered before the single-key route so "batch" is not taken as a task key
@router.put("/{plan_id}/batch")
def update_completions_batch(
    plan_id: int,
    body: BatchCompletionToggle,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    updated = progress_engine.toggle_ai_tasks_batch(db, user_id, plan_id, body.completions)
    return {"success": True, "updated": updated, "message": "Task states updated"}


@router.put("/{plan_id}/{task_key}")
def update_completion(
    plan_id: int,
    task_key: str,
    body: CompletionToggle,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    completion = progress_engine.toggle_ai_task(db, user_id, plan_id, task_key, body.completed)
    return {
        "success": True,
        "completion": AITaskCompletionRead.model_validate(completion).model_dump(mode="json"),
        "message": "Task state updated",
    }

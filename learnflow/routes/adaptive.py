from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from learnflow.core.auth_guard import get_current_user_from_request
from learnflow.db.session import get_db
from learnflow.services.adaptive_engine import adaptive_engine

router = APIRouter(prefix="/api/adaptive", tags=["adaptive"])


@router.post("/{plan_id}/analyze")
async def analyze_plan(plan_id: int, request: Request, db: Session = Depends(get_db)):
    """
    Analyzes the pace of a plan and returns week-by-week adjustment suggestions.
    Falls back to rule-based wording whenever the AI coach is unavailable.
    """
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    suggestion = await adaptive_engine.analyze_and_suggest(db, user_id, plan_id)
    return {"success": True, "suggestion": suggestion.model_dump()}

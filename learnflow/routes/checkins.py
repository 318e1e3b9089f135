from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from learnflow.core.auth_guard import get_current_user_from_request
from learnflow.db.session import get_db
from learnflow.services.checkin_stats import DEFAULT_PERIOD, get_checkin_stats

router = APIRouter(prefix="/api/checkins", tags=["checkins"])


@router.get("/stats")
def checkin_stats(request: Request, period: str = DEFAULT_PERIOD, db: Session = Depends(get_db)):
    """Period totals (week, month or year), all-time totals and streaks."""
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    return get_checkin_stats(db, user_id, period=period)

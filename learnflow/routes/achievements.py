from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from learnflow.core.auth_guard import get_current_user_from_request
from learnflow.db.session import get_db
from learnflow.schemas.achievement import AchievementList, UnlockedAchievement
from learnflow.services.achievements import check_and_unlock, list_achievements, seed_achievements

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


@router.get("")
def get_achievements(request: Request, db: Session = Depends(get_db)):
    """All achievements with the current user's unlock state."""
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    seed_achievements(db)
    return AchievementList(**list_achievements(db, user_id)).model_dump(mode="json")


@router.post("/check")
def check_achievements(request: Request, db: Session = Depends(get_db)):
    """Evaluates the catalog for the current user and returns what was newly unlocked."""
    user_id = get_current_user_from_request(request)
    if not user_id:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    seed_achievements(db)
    newly_unlocked = [UnlockedAchievement(**item).model_dump() for item in check_and_unlock(db, user_id)]
    return {"newly_unlocked": newly_unlocked}

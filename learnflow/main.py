import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# 1. Load .env and configure logging
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from learnflow.db.base import Base
from learnflow.db.session import engine, SessionLocal
from learnflow.core.config import settings
from learnflow.core.errors import AppError
from learnflow.services.achievements import seed_achievements
from learnflow.routes import achievements, adaptive, ai_tasks, checkins, tasks


# 2. Lifespan (database)
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)

        db = SessionLocal()
        try:
            seed_achievements(db)
            logger.info("Achievement catalog seeded.")
        finally:
            db.close()
    except Exception as e:
        logger.error(f"CRITICAL DATABASE ERROR: {e}")
        raise
    yield
    logger.info("Shutting down...")


# 3. App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        {"error": exc.code or "ERROR", "message": exc.message},
        status_code=exc.status_code,
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 4. Routes
app.include_router(ai_tasks.router)
app.include_router(tasks.router)
app.include_router(achievements.router)
app.include_router(adaptive.router)
app.include_router(checkins.router)


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.APP_NAME}

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from learnflow.core.config import settings

DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    connect_args = {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
)

if settings.ENVIRONMENT == "production" and "sqlite" in DATABASE_URL:
    logging.getLogger("learnflow.db").warning(
        "PRODUCTION WARNING: SQLite cannot enforce the serialized progress cascade under load. Use PostgreSQL."
    )

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

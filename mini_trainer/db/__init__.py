# SQLAlchemy models and engine helpers for the durable tier
from .base import Base
from .database import create_db_engine, init_db, make_session_factory, session_scope
from .models import ExerciseResultRecord, ProfileRecord

__all__ = [
    "Base",
    "ExerciseResultRecord",
    "ProfileRecord",
    "create_db_engine",
    "init_db",
    "make_session_factory",
    "session_scope",
]

# ------------------------------ IMPORTS ------------------------------
from .connection import get_db_session, init_db, build_engine, engine, Base, SessionLocal
from .session_store import SessionStore, StoredSession

__all__ = [
    "get_db_session",
    "init_db",
    "build_engine",
    "engine",
    "Base",
    "SessionLocal",
    "SessionStore",
    "StoredSession",
]

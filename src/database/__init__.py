"""
Keyword Research Database Layer

Usage:
    from src.database import SessionStore, init_db

    init_db()
    store = SessionStore()
    session_id = store.save_session(user_id, asins, result, options)
    sessions = store.load_sessions(user_id)
    result = store.reconstruct(user_id, session_id)
"""

from .models import (
    Base,
    ResearchSession,
    ResearchAsin,
    ResearchKeyword,
    KeywordRanking,
    ResearchOpportunity,
    ResearchGap,
)
from .session import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session_factory,
    make_session_factory,
    init_db,
    check_db_connection,
)
from .repository import SessionStore, SavedSession, generate_session_name

__all__ = [
    # Models
    "Base",
    "ResearchSession",
    "ResearchAsin",
    "ResearchKeyword",
    "KeywordRanking",
    "ResearchOpportunity",
    "ResearchGap",
    # Session management
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "make_session_factory",
    "init_db",
    "check_db_connection",
    # Repository
    "SessionStore",
    "SavedSession",
    "generate_session_name",
]

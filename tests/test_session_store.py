"""
Tests for the SQL session store (in-memory SQLite).
"""

from dataclasses import replace
from datetime import datetime

import pytest

from src.database.models import KeywordRanking, ResearchKeyword, ResearchOpportunity
from src.database.repository import SessionStore, generate_session_name
from src.database.session import create_db_engine, make_session_factory
from src.research.errors import DatabaseError, SessionNotFoundError, ValidationError
from src.research.models import ProductKeywordResult, ProductStatus
from src.research.options import ResearchOptions


USER = "user-1"
ASINS = ["B08N5WRWNW", "B07ZPKN6YR"]


def _count(session_factory, model, **filters):
    db = session_factory()
    try:
        return db.query(model).filter_by(**filters).count()
    finally:
        db.close()


class TestSessionNames:
    """Test default session names."""

    def test_single_asin(self):
        assert generate_session_name(["B08N5WRWNW"], datetime(2026, 1, 5)) == "B08N5WRWNW - 2026-01-05"

    def test_with_competitors(self):
        name = generate_session_name(["B08N5WRWNW", "B07ZPKN6YR", "B09XYZ1234"], datetime(2026, 1, 5))
        assert name == "B08N5WRWNW vs 2 competitors - 2026-01-05"


class TestSaveAndLoad:
    """Test writing sessions and listing them back."""

    def test_save_and_list(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        [saved] = session_store.load_sessions(USER)

        assert saved.id == session_id
        assert saved.asin_list == ASINS
        assert saved.asins[0]["is_user_product"] is True
        assert saved.name.startswith("B08N5WRWNW vs 1 competitors - ")
        assert saved.settings["processing_time_ms"] == 1234
        assert saved.settings["options"]["max_keywords_per_asin"] == 50

    def test_custom_name_is_trimmed(self, session_store, sample_result):
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions(), name="  Yoga mats  ")
        assert session_store.load_sessions(USER)[0].name == "Yoga mats"

    def test_sessions_are_per_user(self, session_store, sample_result):
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        assert session_store.load_sessions("someone-else") == []

    def test_keywords_shared_across_sessions(self, session_store, session_factory, sample_result):
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions())

        # yoga mat, non slip yoga mat, thick yoga mat, exercise mat,
        # yoga mat bag, pilates mat, travel yoga mat
        assert _count(session_factory, ResearchKeyword) == 7

    def test_failed_product_status_is_stored(self, session_store, sample_result, sample_products):
        failed = ProductKeywordResult(asin="B09XYZ1234", status=ProductStatus.FAILED, error="boom")
        result = replace(sample_result, asin_results=sample_products + [failed])

        session_store.save_session(USER, ASINS + ["B09XYZ1234"], result, ResearchOptions())
        saved = session_store.load_sessions(USER)[0]

        assert [a["status"] for a in saved.asins] == ["success", "success", "failed"]

    def test_invalid_input(self, session_store, sample_result):
        with pytest.raises(ValidationError):
            session_store.save_session("", ASINS, sample_result, ResearchOptions())
        with pytest.raises(ValidationError):
            session_store.save_session(USER, ["nope"], sample_result, ResearchOptions())

    def test_summary_serializes(self, session_store, sample_result):
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        data = session_store.load_sessions(USER)[0].to_dict()

        assert data["user_id"] == USER
        assert isinstance(data["created_at"], str)


class TestMatchingSessions:
    """Test exact ASIN-list matching."""

    def test_exact_order_only(self, session_store, sample_result):
        session_store.save_session(USER, ASINS, sample_result, ResearchOptions())

        assert len(session_store.find_matching_sessions(USER, ASINS)) == 1
        assert len(session_store.find_matching_sessions(USER, [a.lower() for a in ASINS])) == 1
        assert session_store.find_matching_sessions(USER, list(reversed(ASINS))) == []
        assert session_store.find_matching_sessions(USER, ASINS[:1]) == []


class TestRenameAndDelete:
    """Test ownership checks on mutation."""

    def test_rename(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())

        assert session_store.rename_session(USER, session_id, " Spring launch ") == "Spring launch"
        assert session_store.load_sessions(USER)[0].name == "Spring launch"

    def test_rename_rejects_blank_and_bad_names(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())

        with pytest.raises(ValidationError):
            session_store.rename_session(USER, session_id, "   ")
        with pytest.raises(ValidationError):
            session_store.rename_session(USER, session_id, "bad <name>")

    def test_rename_other_users_session(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        with pytest.raises(SessionNotFoundError):
            session_store.rename_session("intruder", session_id, "Mine now")

    def test_delete_removes_all_rows(self, session_store, session_factory, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        assert _count(session_factory, KeywordRanking, session_id=session_id) == 10

        session_store.delete_session(USER, session_id)

        assert session_store.load_sessions(USER) == []
        assert _count(session_factory, KeywordRanking, session_id=session_id) == 0
        assert _count(session_factory, ResearchOpportunity, session_id=session_id) == 0
        # Shared keyword text survives
        assert _count(session_factory, ResearchKeyword) == 7

    def test_delete_missing_session(self, session_store):
        with pytest.raises(SessionNotFoundError):
            session_store.delete_session(USER, "does-not-exist")


class TestReconstruct:
    """Test rebuilding a stored session."""

    def test_matches_live_result(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        rebuilt = session_store.reconstruct(USER, session_id)

        assert rebuilt.asin_results == sample_result.asin_results
        assert rebuilt.aggregated_keywords == sample_result.aggregated_keywords
        assert rebuilt.comparison_view == sample_result.comparison_view
        assert rebuilt.gap_analysis == sample_result.gap_analysis
        assert rebuilt.overview.processing_time_ms == 1234
        assert [o.keyword for o in rebuilt.opportunities] == [
            o.keyword for o in sample_result.opportunities
        ]
        assert [o.competitor_performance for o in rebuilt.opportunities] == [
            o.competitor_performance for o in sample_result.opportunities
        ]

    def test_other_user_gets_nothing(self, session_store, sample_result):
        session_id = session_store.save_session(USER, ASINS, sample_result, ResearchOptions())
        assert session_store.reconstruct("intruder", session_id) is None

    def test_missing_session(self, session_store):
        assert session_store.reconstruct(USER, "does-not-exist") is None


class TestStorageFailures:
    """A database without tables stands in for a broken connection."""

    @pytest.fixture
    def broken_store(self):
        engine = create_db_engine("sqlite://")
        yield SessionStore(make_session_factory(engine))
        engine.dispose()

    def test_save_raises_database_error(self, broken_store, sample_result):
        with pytest.raises(DatabaseError):
            broken_store.save_session(USER, ASINS, sample_result, ResearchOptions())

    def test_list_raises_database_error(self, broken_store):
        with pytest.raises(DatabaseError):
            broken_store.load_sessions(USER)

    def test_reads_for_reconstruction_degrade(self, broken_store):
        assert broken_store.find_matching_sessions(USER, ASINS) == []
        assert broken_store.reconstruct(USER, "any") is None

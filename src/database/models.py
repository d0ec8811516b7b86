"""
SQLAlchemy Models for Keyword Research Sessions

Design Principles:
1. One session row per research run, owned by a user
2. Keyword text stored once, referenced by rankings, opportunities and gaps
3. Ranking rows keep everything needed to rebuild the run deterministically
4. Deleting a session removes all of its rows

Works on PostgreSQL (JSONB) and SQLite (JSON) for local development and tests.
"""

from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Index, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

from src.research.models import utc_now

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# SESSIONS
# =============================================================================

class ResearchSession(Base):
    """One research run - the central entity"""
    __tablename__ = "research_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)

    # ResearchOptions.to_dict() plus run metadata (processing_time_ms)
    settings = Column(JSONType, default=dict)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    asins = relationship(
        "ResearchAsin", back_populates="session",
        cascade="all, delete-orphan", order_by="ResearchAsin.order_index",
    )
    rankings = relationship("KeywordRanking", back_populates="session", cascade="all, delete-orphan")
    opportunities = relationship("ResearchOpportunity", back_populates="session", cascade="all, delete-orphan")
    gaps = relationship("ResearchGap", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_session_user_created", "user_id", "created_at"),
    )


class ResearchAsin(Base):
    """Products of a session, in request order"""
    __tablename__ = "research_asins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("research_sessions.id", ondelete="CASCADE"), nullable=False)
    asin = Column(String(10), nullable=False)
    is_user_product = Column(Boolean, default=False)
    order_index = Column(Integer, nullable=False)
    status = Column(String(20), default="success")  # success, failed, no_data
    processed_at = Column(DateTime, default=utc_now)

    session = relationship("ResearchSession", back_populates="asins")

    __table_args__ = (
        Index("idx_asin_session_order", "session_id", "order_index"),
    )


# =============================================================================
# KEYWORDS
# =============================================================================

class ResearchKeyword(Base):
    """Keyword text shared across sessions"""
    __tablename__ = "research_keywords"

    id = Column(String(36), primary_key=True, default=_uuid)
    keyword_text = Column(String(500), nullable=False)
    keyword_normalized = Column(String(500), nullable=False)  # Lowercase, trimmed for dedup

    # Values seen when the keyword was first stored
    search_volume = Column(Integer)
    cpc = Column(Float)

    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("keyword_normalized", name="uq_keyword_normalized"),
    )


class KeywordRanking(Base):
    """One keyword occurrence for one product in one session"""
    __tablename__ = "keyword_rankings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("research_sessions.id", ondelete="CASCADE"), nullable=False)
    asin = Column(String(10), nullable=False)
    keyword_id = Column(String(36), ForeignKey("research_keywords.id"), nullable=False)

    # Occurrence as collected (keyword text kept verbatim for case-preserving rebuilds)
    keyword_text = Column(String(500), nullable=False)
    search_volume = Column(Integer, default=0)
    cpc = Column(Float, default=0.0)
    ranking_position = Column(Integer)
    traffic_percentage = Column(Float)

    # Market metrics
    products = Column(Integer)
    purchases = Column(Integer)
    purchase_rate = Column(Float)
    supply_demand_ratio = Column(Float)
    ad_products = Column(Float)
    bid_min = Column(Float)
    bid_max = Column(Float)
    monopoly_click_rate = Column(Float)
    title_density = Column(Float)

    # Full KeywordMetrics.to_dict()
    metrics = Column(JSONType, default=dict)

    row_index = Column(Integer, nullable=False, default=0)

    session = relationship("ResearchSession", back_populates="rankings")
    keyword = relationship("ResearchKeyword")

    __table_args__ = (
        Index("idx_ranking_session_asin", "session_id", "asin", "row_index"),
        Index("idx_ranking_keyword", "keyword_id"),
    )


# =============================================================================
# RESULTS
# =============================================================================

class ResearchOpportunity(Base):
    """Filtered opportunity as delivered to the user"""
    __tablename__ = "research_opportunities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("research_sessions.id", ondelete="CASCADE"), nullable=False)
    keyword_id = Column(String(36), ForeignKey("research_keywords.id"), nullable=False)

    opportunity_type = Column(String(50), default="low_competition")
    competition_score = Column(Float)
    supply_demand_ratio = Column(Float)
    competitor_performance = Column(JSONType, default=dict)

    # keyword, search_volume, cpc, growth_trend, metrics, position
    details = Column(JSONType, default=dict)

    session = relationship("ResearchSession", back_populates="opportunities")
    keyword = relationship("ResearchKeyword")


class ResearchGap(Base):
    """Gap found between the user's product and competitors"""
    __tablename__ = "research_gaps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("research_sessions.id", ondelete="CASCADE"), nullable=False)
    keyword_id = Column(String(36), ForeignKey("research_keywords.id"), nullable=False)

    gap_type = Column(String(50), nullable=False)
    gap_score = Column(Integer, default=0)
    user_ranking_position = Column(Integer)
    competitors_data = Column(JSONType, default=dict)  # {user_asin, user_ranking, competitor_rankings}
    recommendation = Column(Text)
    potential_impact = Column(String(20))

    # keyword, metrics
    details = Column(JSONType, default=dict)

    session = relationship("ResearchSession", back_populates="gaps")
    keyword = relationship("ResearchKeyword")

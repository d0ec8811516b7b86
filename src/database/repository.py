"""
Repository Layer - Research Session Store

Persists research runs into the normalized tables and reads them back.

Writes raise DatabaseError on any storage failure. Reads used for
reconstruction return None instead, so callers can fall back to a fresh run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from src.research.errors import (
    DatabaseError,
    SessionNotFoundError,
    ValidationError,
    validate_asins,
    validate_session_name,
    validate_user_id,
)
from src.research.models import KeywordMetrics, ResearchResult, normalize_keyword, utc_now
from src.research.options import ResearchOptions
from src.research.reconstruction import (
    SessionReconstructor,
    SessionRows,
    StoredAsin,
    StoredGap,
    StoredOpportunity,
    StoredRanking,
)

from .models import (
    KeywordRanking,
    ResearchAsin,
    ResearchGap,
    ResearchKeyword,
    ResearchOpportunity,
    ResearchSession,
)
from .session import get_session_factory, session_scope

logger = logging.getLogger(__name__)

KEYWORD_LOOKUP_CHUNK = 500


def generate_session_name(asins: Sequence[str], when: Optional[datetime] = None) -> str:
    """'{asin} - {date}' or '{asin} vs {n} competitors - {date}'."""
    date = (when or utc_now()).strftime("%Y-%m-%d")
    if len(asins) == 1:
        return f"{asins[0]} - {date}"
    return f"{asins[0]} vs {len(asins) - 1} competitors - {date}"


@dataclass
class SavedSession:
    """Session summary as listed to the user."""
    id: str
    name: str
    user_id: str
    created_at: datetime
    updated_at: Optional[datetime]
    settings: Dict[str, Any] = field(default_factory=dict)
    asins: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def asin_list(self) -> List[str]:
        return [a["asin"] for a in sorted(self.asins, key=lambda a: a["order_index"])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "settings": self.settings,
            "asins": self.asins,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedSession":
        created = data.get("created_at")
        updated = data.get("updated_at")
        return cls(
            id=data["id"],
            name=data["name"],
            user_id=data["user_id"],
            created_at=datetime.fromisoformat(created) if created else None,
            updated_at=datetime.fromisoformat(updated) if updated else None,
            settings=data.get("settings") or {},
            asins=list(data.get("asins") or []),
        )


def _session_summary(row: ResearchSession) -> SavedSession:
    return SavedSession(
        id=row.id,
        name=row.name,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        settings=row.settings or {},
        asins=[
            {
                "asin": a.asin,
                "is_user_product": bool(a.is_user_product),
                "order_index": a.order_index,
                "status": a.status,
            }
            for a in sorted(row.asins, key=lambda a: a.order_index)
        ],
    )


class SessionStore:
    """
    Research sessions in SQL.

    Usage:
        store = SessionStore()
        session_id = store.save_session(user_id, asins, result, options)
        result = store.reconstruct(user_id, session_id)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        reconstructor: Optional[SessionReconstructor] = None,
    ):
        self._factory = session_factory
        self.reconstructor = reconstructor or SessionReconstructor()

    def _scope(self):
        return session_scope(self._factory or get_session_factory())

    # =========================================================================
    # KEYWORDS
    # =========================================================================

    @staticmethod
    def _collect_keywords(result: ResearchResult) -> Dict[str, Dict[str, Any]]:
        """Unique keywords across products, aggregates, opportunities and gaps (first wins)."""
        found: Dict[str, Dict[str, Any]] = {}

        def add(text: str, volume: Any, cpc: Any):
            key = normalize_keyword(text)
            if key and key not in found:
                found[key] = {"keyword_text": text.strip(), "search_volume": volume, "cpc": cpc}

        for product in result.asin_results:
            if product.succeeded:
                for kw in product.keywords:
                    add(kw.keyword, kw.search_volume, kw.cpc)
        for kw in result.aggregated_keywords:
            add(kw.keyword, kw.search_volume, kw.avg_cpc)
        for opp in result.opportunities:
            add(opp.keyword, opp.search_volume, opp.avg_cpc)
        if result.gap_analysis:
            for gap in result.gap_analysis.gaps:
                add(gap.keyword, gap.search_volume, gap.avg_cpc)
        return found

    @staticmethod
    def _upsert_keywords(db: Session, keywords: Dict[str, Dict[str, Any]]) -> Dict[str, str]:
        """Map folded keyword -> research_keywords.id, inserting what is missing."""
        ids: Dict[str, str] = {}
        wanted = list(keywords)
        for start in range(0, len(wanted), KEYWORD_LOOKUP_CHUNK):
            chunk = wanted[start:start + KEYWORD_LOOKUP_CHUNK]
            existing = (
                db.query(ResearchKeyword)
                .filter(ResearchKeyword.keyword_normalized.in_(chunk))
                .all()
            )
            for row in existing:
                ids[row.keyword_normalized] = row.id

        created = 0
        for key, values in keywords.items():
            if key in ids:
                continue
            row = ResearchKeyword(keyword_normalized=key, **values)
            db.add(row)
            db.flush()
            ids[key] = row.id
            created += 1

        logger.debug(f"Keyword upsert: {len(ids) - created} existing, {created} new")
        return ids

    # =========================================================================
    # WRITES
    # =========================================================================

    def save_session(
        self,
        user_id: str,
        asins: Sequence[str],
        result: ResearchResult,
        options: ResearchOptions,
        name: Optional[str] = None,
    ) -> str:
        """
        Persist a research run.

        Returns:
            New session id

        Raises:
            ValidationError: Bad user, ASINs or name
            DatabaseError: Any storage failure
        """
        user_id = validate_user_id(user_id)
        asin_list = validate_asins(list(asins))
        name = validate_session_name(name) or generate_session_name(asin_list)

        statuses = {}
        products_by_asin = {}
        for product in result.asin_results:
            statuses.setdefault(product.asin, product.status.value)
            products_by_asin.setdefault(product.asin, product)

        try:
            with self._scope() as db:
                session = ResearchSession(
                    user_id=user_id,
                    name=name,
                    settings={
                        "options": options.to_dict(),
                        "processing_time_ms": result.overview.processing_time_ms,
                    },
                )
                db.add(session)
                db.flush()

                for index, asin in enumerate(asin_list):
                    db.add(ResearchAsin(
                        session_id=session.id,
                        asin=asin,
                        is_user_product=index == 0,
                        order_index=index,
                        status=statuses.get(asin, "success"),
                    ))

                keyword_ids = self._upsert_keywords(db, self._collect_keywords(result))

                ranking_count = 0
                for asin, product in products_by_asin.items():
                    if not product.succeeded:
                        continue
                    for row_index, kw in enumerate(product.keywords):
                        m = kw.metrics
                        db.add(KeywordRanking(
                            session_id=session.id,
                            asin=asin,
                            keyword_id=keyword_ids[normalize_keyword(kw.keyword)],
                            keyword_text=kw.keyword,
                            search_volume=kw.search_volume,
                            cpc=kw.cpc,
                            ranking_position=kw.ranking_position,
                            traffic_percentage=kw.traffic_percentage,
                            products=m.products,
                            purchases=m.purchases,
                            purchase_rate=m.purchase_rate,
                            supply_demand_ratio=m.supply_demand_ratio,
                            ad_products=m.ad_products,
                            bid_min=m.bid_min,
                            bid_max=m.bid_max,
                            monopoly_click_rate=m.monopoly_click_rate,
                            title_density=m.title_density,
                            metrics=m.to_dict(),
                            row_index=row_index,
                        ))
                        ranking_count += 1

                for opp in result.opportunities:
                    db.add(ResearchOpportunity(
                        session_id=session.id,
                        keyword_id=keyword_ids[normalize_keyword(opp.keyword)],
                        opportunity_type=opp.opportunity_type.value,
                        competition_score=opp.competition_score,
                        supply_demand_ratio=opp.supply_demand_ratio,
                        competitor_performance=(
                            opp.competitor_performance.to_dict() if opp.competitor_performance else {}
                        ),
                        details={
                            "keyword": opp.keyword,
                            "search_volume": opp.search_volume,
                            "cpc": opp.avg_cpc,
                            "growth_trend": opp.growth_trend,
                            "metrics": opp.metrics.to_dict(),
                        },
                    ))

                if result.gap_analysis:
                    for gap in result.gap_analysis.gaps:
                        db.add(ResearchGap(
                            session_id=session.id,
                            keyword_id=keyword_ids[normalize_keyword(gap.keyword)],
                            gap_type=gap.gap_type.value,
                            gap_score=gap.gap_score,
                            user_ranking_position=gap.user_ranking.position,
                            competitors_data={
                                "user_asin": gap.user_ranking.asin,
                                "user_ranking": gap.user_ranking.to_dict(),
                                "competitor_rankings": [c.to_dict() for c in gap.competitor_rankings],
                            },
                            recommendation=gap.recommendation,
                            potential_impact=gap.potential_impact.value,
                            details={"keyword": gap.keyword, "metrics": gap.metrics.to_dict()},
                        ))

                session_id = session.id

        except SQLAlchemyError as e:
            logger.error(f"Failed to save research session for user {user_id}: {e}")
            raise DatabaseError(f"Failed to save research session: {e}") from e

        logger.info(
            f"Saved session {session_id}: {len(asin_list)} ASINs, {ranking_count} rankings, "
            f"{len(result.opportunities)} opportunities"
        )
        return session_id

    def delete_session(self, user_id: str, session_id: str) -> None:
        """
        Delete a session and everything attached to it.

        Raises:
            SessionNotFoundError: Missing session or owned by someone else
            DatabaseError: Storage failure
        """
        try:
            with self._scope() as db:
                session = db.get(ResearchSession, session_id)
                if session is None or session.user_id != user_id:
                    raise SessionNotFoundError(session_id, user_id)
                db.delete(session)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete session {session_id}: {e}")
            raise DatabaseError(f"Failed to delete session: {e}") from e
        logger.info(f"Deleted session {session_id}")

    def rename_session(self, user_id: str, session_id: str, name: str) -> str:
        """Rename a session. Returns the stored (trimmed) name."""
        new_name = validate_session_name(name)
        if new_name is None:
            raise ValidationError("Session name is required")

        try:
            with self._scope() as db:
                session = db.get(ResearchSession, session_id)
                if session is None or session.user_id != user_id:
                    raise SessionNotFoundError(session_id, user_id)
                session.name = new_name
                session.updated_at = utc_now()
        except SQLAlchemyError as e:
            logger.error(f"Failed to rename session {session_id}: {e}")
            raise DatabaseError(f"Failed to update session name: {e}") from e
        return new_name

    # =========================================================================
    # READS
    # =========================================================================

    def _user_sessions(self, db: Session, user_id: str) -> Iterable[ResearchSession]:
        return (
            db.query(ResearchSession)
            .options(selectinload(ResearchSession.asins))
            .filter(ResearchSession.user_id == user_id)
            .order_by(ResearchSession.created_at.desc())
            .all()
        )

    def load_sessions(self, user_id: str) -> List[SavedSession]:
        """All of a user's sessions, newest first."""
        try:
            with self._scope() as db:
                return [_session_summary(row) for row in self._user_sessions(db, user_id)]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load sessions for user {user_id}: {e}")
            raise DatabaseError(f"Failed to load sessions: {e}") from e

    def find_matching_sessions(self, user_id: str, asins: Sequence[str]) -> List[SavedSession]:
        """Sessions with exactly these ASINs in this order, newest first. [] on failure."""
        wanted = [a.upper() for a in asins]
        try:
            with self._scope() as db:
                return [
                    summary
                    for summary in (_session_summary(row) for row in self._user_sessions(db, user_id))
                    if summary.asin_list == wanted
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to find matching sessions for user {user_id}: {e}")
            return []

    def load_session_rows(self, user_id: str, session_id: str) -> Optional[SessionRows]:
        """Stored rows of one owned session, or None when missing."""
        with self._scope() as db:
            session = db.get(ResearchSession, session_id)
            if session is None or session.user_id != user_id:
                return None

            rankings = (
                db.query(KeywordRanking)
                .filter(KeywordRanking.session_id == session_id)
                .order_by(KeywordRanking.asin, KeywordRanking.row_index)
                .all()
            )
            opportunities = (
                db.query(ResearchOpportunity)
                .options(selectinload(ResearchOpportunity.keyword))
                .filter(ResearchOpportunity.session_id == session_id)
                .order_by(ResearchOpportunity.id)
                .all()
            )
            gaps = (
                db.query(ResearchGap)
                .options(selectinload(ResearchGap.keyword))
                .filter(ResearchGap.session_id == session_id)
                .order_by(ResearchGap.id)
                .all()
            )

            return SessionRows(
                session_id=session.id,
                user_id=session.user_id,
                name=session.name,
                settings=session.settings or {},
                created_at=session.created_at,
                asins=[
                    StoredAsin(
                        asin=a.asin,
                        order_index=a.order_index,
                        is_user_product=bool(a.is_user_product),
                        status=a.status or "success",
                    )
                    for a in session.asins
                ],
                rankings=[
                    StoredRanking(
                        asin=r.asin,
                        keyword=r.keyword_text,
                        search_volume=r.search_volume or 0,
                        cpc=r.cpc or 0.0,
                        ranking_position=r.ranking_position,
                        traffic_percentage=r.traffic_percentage,
                        metrics=KeywordMetrics.from_dict(r.metrics),
                        row_index=r.row_index,
                    )
                    for r in rankings
                ],
                opportunities=[
                    StoredOpportunity(
                        keyword=(o.details or {}).get("keyword") or o.keyword.keyword_text,
                        search_volume=(o.details or {}).get("search_volume") or o.keyword.search_volume or 0,
                        cpc=(o.details or {}).get("cpc") or o.keyword.cpc or 0.0,
                        opportunity_type=o.opportunity_type,
                        competition_score=o.competition_score or 0.0,
                        supply_demand_ratio=o.supply_demand_ratio,
                        competitor_performance=o.competitor_performance or None,
                        details=o.details or {},
                    )
                    for o in opportunities
                ],
                gaps=[
                    StoredGap(
                        keyword=(g.details or {}).get("keyword") or g.keyword.keyword_text,
                        gap_type=g.gap_type,
                        gap_score=g.gap_score or 0,
                        details=g.details or {},
                    )
                    for g in gaps
                ],
            )

    def reconstruct(self, user_id: str, session_id: str) -> Optional[ResearchResult]:
        """Rebuild a session's result. None when missing, not owned, or on any storage error."""
        try:
            rows = self.load_session_rows(user_id, session_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load session {session_id} for reconstruction: {e}")
            return None

        if rows is None:
            logger.warning(f"Session {session_id} not found for user {user_id}")
            return None

        try:
            return self.reconstructor.reconstruct(rows)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to reconstruct session {session_id}: {e}")
            return None

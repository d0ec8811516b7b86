"""
Keyword Research Errors

Exception hierarchy plus the helpers the service and API layers share:
input validation, error-to-response mapping and retry with backoff.

Usage:
    asins = validate_asins(["b08n5wrwnw"])        # -> ["B08N5WRWNW"]
    info = handle_error(exc, "research request")  # -> {"message", "status_code", "code"}
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)
SESSION_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_.,()]+$")
MAX_ASINS = 10
MAX_SESSION_NAME_LENGTH = 100


# ============================================================================
# EXCEPTIONS
# ============================================================================

class KeywordResearchError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.context = context or {}


class ValidationError(KeywordResearchError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", 400, context)


class DatabaseError(KeywordResearchError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", 500, context)


class CacheError(KeywordResearchError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CACHE_ERROR", 500, context)


class SessionNotFoundError(KeywordResearchError):
    def __init__(self, session_id: str, user_id: Optional[str] = None):
        super().__init__(
            f"Session {session_id} not found or access denied",
            "SESSION_NOT_FOUND",
            404,
            {"session_id": session_id, "user_id": user_id},
        )


class RateLimitError(KeywordResearchError):
    def __init__(self, service: str, retry_after: Optional[float] = None):
        super().__init__(
            f"Rate limit exceeded for {service}",
            "RATE_LIMIT_EXCEEDED",
            429,
            {"service": service, "retry_after": retry_after},
        )


class ExternalServiceError(KeywordResearchError):
    def __init__(self, service: str, original: Optional[BaseException] = None):
        super().__init__(
            f"External service error: {service}",
            "EXTERNAL_SERVICE_ERROR",
            502,
            {"service": service, "original_error": str(original) if original else None},
        )


class ResearchCancelled(KeywordResearchError):
    """Raised when the caller cancels a run before results are assembled."""

    def __init__(self, message: str = "Research cancelled"):
        super().__init__(message, "CANCELLED", 499)


# ============================================================================
# VALIDATION
# ============================================================================

def validate_asins(asins: Any) -> List[str]:
    """
    Validate 1-10 ASINs and return them upper-cased, order preserved.

    Raises:
        ValidationError: On a missing list, too many ASINs or a bad format
    """
    if not asins or not isinstance(asins, (list, tuple)):
        raise ValidationError("ASINs array is required and must not be empty")

    if len(asins) > MAX_ASINS:
        raise ValidationError(f"Maximum {MAX_ASINS} ASINs allowed per request")

    invalid = [str(a) for a in asins if not isinstance(a, str) or not ASIN_PATTERN.match(a)]
    if invalid:
        raise ValidationError(f"Invalid ASIN format: {', '.join(invalid)}", {"invalid": invalid})

    return [a.upper() for a in asins]


def validate_user_id(user_id: Any) -> str:
    if not user_id or not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("Valid user ID is required")
    return user_id.strip()


def validate_session_name(name: Any) -> Optional[str]:
    """Return a trimmed session name, or None when blank."""
    if name is None:
        return None

    if not isinstance(name, str):
        raise ValidationError("Session name must be a string")

    trimmed = name.strip()
    if not trimmed:
        return None

    if len(trimmed) > MAX_SESSION_NAME_LENGTH:
        raise ValidationError(f"Session name must be {MAX_SESSION_NAME_LENGTH} characters or less")

    if not SESSION_NAME_PATTERN.match(trimmed):
        raise ValidationError("Session name contains invalid characters")

    return trimmed


def _bounded_number(value: Any, low: float, high: float, label: str, cast=int):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be between {low:,} and {high:,}")
    if number < low or number > high:
        raise ValidationError(f"{label} must be between {low:,} and {high:,}")
    return number


def validate_research_options(options: Any) -> Dict[str, Any]:
    """
    Validate user-supplied research options.

    Returns a snake_case dict holding only the recognised, range-checked
    values; ResearchOptions.from_dict() fills in the rest.
    """
    if not options or not isinstance(options, dict):
        return {}

    def get(source: Dict[str, Any], snake: str, camel: str) -> Any:
        return source.get(snake, source.get(camel))

    validated: Dict[str, Any] = {}

    value = get(options, "max_keywords_per_asin", "maxKeywordsPerAsin")
    if value is not None:
        validated["max_keywords_per_asin"] = _bounded_number(value, 1, 200, "maxKeywordsPerAsin")

    value = get(options, "min_search_volume", "minSearchVolume")
    if value is not None:
        validated["min_search_volume"] = _bounded_number(value, 0, 50000, "minSearchVolume")

    for snake, camel in (
        ("include_opportunities", "includeOpportunities"),
        ("include_gap_analysis", "includeGapAnalysis"),
    ):
        value = get(options, snake, camel)
        if value is not None:
            validated[snake] = bool(value)

    raw_filters = get(options, "opportunity_filters", "opportunityFilters")
    if isinstance(raw_filters, dict):
        filters: Dict[str, Any] = {}

        value = get(raw_filters, "min_search_volume", "minSearchVolume")
        if value is not None:
            filters["min_search_volume"] = _bounded_number(
                value, 0, 50000, "opportunityFilters.minSearchVolume"
            )

        value = get(raw_filters, "max_search_volume", "maxSearchVolume")
        if value is not None:
            filters["max_search_volume"] = _bounded_number(
                value, 0, 10_000_000, "opportunityFilters.maxSearchVolume"
            )

        value = get(raw_filters, "max_competitors_in_top15", "maxCompetitorsInTop15")
        if value is not None:
            filters["max_competitors_in_top15"] = _bounded_number(
                value, 0, 15, "opportunityFilters.maxCompetitorsInTop15"
            )

        value = get(raw_filters, "min_competitors_ranking", "minCompetitorsRanking")
        if value is not None:
            filters["min_competitors_ranking"] = _bounded_number(
                value, 0, 100, "opportunityFilters.minCompetitorsRanking"
            )

        value = get(raw_filters, "max_competitor_strength", "maxCompetitorStrength")
        if value is not None:
            filters["max_competitor_strength"] = _bounded_number(
                value, 1, 10, "opportunityFilters.maxCompetitorStrength", cast=float
            )

        if filters:
            validated["opportunity_filters"] = filters

    raw_gap = get(options, "gap_analysis_options", "gapAnalysisOptions")
    if isinstance(raw_gap, dict):
        gap: Dict[str, Any] = {}
        for snake, camel, high in (
            ("min_gap_volume", "minGapVolume", 1_000_000),
            ("max_gap_position", "maxGapPosition", 100),
            ("focus_volume_threshold", "focusVolumeThreshold", 1_000_000),
        ):
            value = get(raw_gap, snake, camel)
            if value is not None:
                gap[snake] = _bounded_number(value, 0, high, f"gapAnalysisOptions.{camel}")
        if gap:
            validated["gap_analysis_options"] = gap

    return validated


# ============================================================================
# ERROR MAPPING
# ============================================================================

def handle_error(error: BaseException, context: str) -> Dict[str, Any]:
    """
    Log an error and map it to a client-facing response payload.

    Known KeywordResearchErrors keep their own message and status; anything
    else is classified from its message and reported generically.
    """
    if isinstance(error, KeywordResearchError):
        if error.status_code >= 500:
            logger.error(f"{context}: {error.message}")
        else:
            logger.warning(f"{context}: {error.message}")
        return {"message": error.message, "status_code": error.status_code, "code": error.code}

    logger.error(f"{context}: {error}", exc_info=error)
    text = str(error).lower()

    if "rate limit" in text or getattr(error, "status_code", None) == 429:
        return {
            "message": "Service temporarily unavailable due to rate limits. Please try again later.",
            "status_code": 429,
            "code": "RATE_LIMIT_EXCEEDED",
        }
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)) or "timeout" in text or "timed out" in text:
        return {
            "message": "Request timed out. Please try again.",
            "status_code": 504,
            "code": "TIMEOUT_ERROR",
        }
    if isinstance(error, ConnectionError) or "connection" in text or "network" in text:
        return {
            "message": "Service temporarily unavailable. Please try again.",
            "status_code": 502,
            "code": "NETWORK_ERROR",
        }
    if "database" in text:
        return {
            "message": "Database operation failed. Please try again.",
            "status_code": 500,
            "code": "DATABASE_ERROR",
        }

    return {
        "message": "An unexpected error occurred. Please try again.",
        "status_code": 500,
        "code": "INTERNAL_ERROR",
    }


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    context: str = "operation",
) -> T:
    """
    Await `operation()` up to `max_retries` times with exponential backoff.

    Client-side errors (4xx-class KeywordResearchErrors) are raised at once.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except KeywordResearchError as e:
            if 400 <= e.status_code < 500 or attempt == max_retries:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{context} attempt {attempt} failed, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)
        except Exception as e:
            if attempt == max_retries:
                logger.error(f"{context} failed after {max_retries} attempts: {e}")
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{context} attempt {attempt} failed, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)

    raise RuntimeError(f"{context}: max_retries must be at least 1")

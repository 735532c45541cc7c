"""
Expansion Planner Exception Types

Concrete exception types shared by every layer of the planner.
Catch these instead of a broad `except Exception` so callers can tell a
bad request apart from a flaky dependency.

Usage:
    from src.domain.exceptions import DataValidationError, DependencyError

    try:
        result = await service.generate_scenario(config)
    except DataValidationError as e:
        return {"error": str(e), "field": e.field}
    except DependencyError as e:
        logger.error(f"{e.dependency} unavailable: {e}")
"""

from typing import Any, Optional


class ExpansionPlannerError(Exception):
    """
    Base exception for all expansion planner errors.

    Catching this class catches every error raised on purpose by the planner.
    """

    pass


class DataValidationError(ExpansionPlannerError):
    """
    Input validation errors.

    Raised before any external dependency is contacted:
    - missing region filter
    - budget below the minimum
    - timeline out of range
    - too few / too many scenarios to compare

    Attributes:
        field: name of the offending field
        value: the rejected value
        constraint: the rule that was violated

    Example:
        raise DataValidationError(
            "Budget must be at least $1M",
            field="budget",
            value=250_000,
            constraint="budget >= 1000000"
        )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None
    ):
        super().__init__(message)
        self.field = field
        self.value = value
        self.constraint = constraint


class DependencyError(ExpansionPlannerError):
    """
    An external dependency (reasoning service, geocoder, cache store) failed.

    Attributes:
        dependency: logical dependency name (e.g. "market_data", "geocoding")
        is_retryable: whether the resilience layer may try again
    """

    def __init__(
        self,
        message: str,
        dependency: Optional[str] = None,
        is_retryable: bool = True
    ):
        super().__init__(message)
        self.dependency = dependency
        self.is_retryable = is_retryable


class CircuitOpenError(DependencyError):
    """The circuit breaker for a dependency is OPEN; the call was not attempted."""

    def __init__(self, name: str, retry_after: Optional[float] = None):
        super().__init__(
            f"Circuit breaker '{name}' is OPEN",
            dependency=name,
            is_retryable=False
        )
        self.retry_after = retry_after


class LLMAPIError(DependencyError):
    """
    Reasoning service API errors (rate limit, timeout, server error).

    Attributes:
        model: model identifier used for the call
        error_code: provider error code or "timeout"

    Example:
        raise LLMAPIError(
            "Rate limit exceeded",
            model="gpt-5-mini",
            error_code="rate_limit_exceeded",
            is_retryable=True
        )
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        error_code: Optional[str] = None,
        is_retryable: bool = True
    ):
        super().__init__(message, dependency="reasoning", is_retryable=is_retryable)
        self.model = model
        self.error_code = error_code


class MissingCredentialError(DependencyError):
    """An API key needed for an external call is not configured. Never retried."""

    def __init__(self, credential: str, dependency: Optional[str] = None):
        super().__init__(
            f"{credential} is not configured",
            dependency=dependency,
            is_retryable=False
        )
        self.credential = credential


class MalformedResponseError(DependencyError):
    """
    The reasoning service answered, but the payload did not match the
    requested JSON schema.

    Attributes:
        raw_preview: first 200 characters of the raw payload
    """

    def __init__(self, message: str, raw_preview: str = "", model: Optional[str] = None):
        super().__init__(message, dependency="reasoning", is_retryable=True)
        self.raw_preview = raw_preview[:200]
        self.model = model


class GeocodingError(DependencyError):
    """Geocoding batch request failed as a whole."""

    def __init__(self, message: str, status_code: Optional[int] = None, is_retryable: bool = True):
        super().__init__(message, dependency="geocoding", is_retryable=is_retryable)
        self.status_code = status_code


class StageFailure(ExpansionPlannerError):
    """
    A pipeline stage failed.

    Carried as data inside a StageResult so the controller can keep going;
    only raised by callers that explicitly need the stage output.

    Attributes:
        stage: human readable stage name
        cause: underlying exception, if any
    """

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.cause = cause


class PipelineCancelledError(ExpansionPlannerError):
    """A pipeline run was cancelled before it finished."""

    def __init__(self, pipeline_id: str):
        super().__init__(f"Pipeline {pipeline_id} was cancelled")
        self.pipeline_id = pipeline_id

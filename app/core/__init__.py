"""Core module exports."""
from app.core.config import settings, get_settings
from app.core.database import Base, get_db, init_db, engine, async_session_maker
from app.core.exceptions import (
    APIException,
    NotFoundException,
    ConflictException,
    AttemptNotFoundException,
    JobListingNotFoundException,
    AttemptNotRetryableException,
    PipelineError,
    FetchError,
    PermissionDenied,
    StrategyError,
    ProviderError,
    ProviderTimeout,
    ProviderRateLimited,
    ProviderResponseInvalid,
    AllProvidersExhausted,
    ExtractionExhausted,
    InvalidTransition,
    OperationalFailure,
    EventClosed,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "engine",
    "async_session_maker",
    # API exceptions
    "APIException",
    "NotFoundException",
    "ConflictException",
    "AttemptNotFoundException",
    "JobListingNotFoundException",
    "AttemptNotRetryableException",
    # Pipeline exceptions
    "PipelineError",
    "FetchError",
    "PermissionDenied",
    "StrategyError",
    "ProviderError",
    "ProviderTimeout",
    "ProviderRateLimited",
    "ProviderResponseInvalid",
    "AllProvidersExhausted",
    "ExtractionExhausted",
    "InvalidTransition",
    "OperationalFailure",
    "EventClosed",
]

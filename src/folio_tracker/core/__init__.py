"""folio_tracker.core: Foundation types, config, and exceptions."""

from folio_tracker.core.config import (
    APIConfig,
    MonitoringConfig,
    ProviderOverride,
    ProvidersConfig,
    StorageConfig,
    TrackerConfig,
    load_config,
)
from folio_tracker.core.exceptions import (
    ConfigError,
    FamilyMemberNotFoundError,
    FolioTrackerError,
    HoldingNotFoundError,
    MonitorError,
    ProviderError,
    RateLimitError,
    RefreshError,
    StorageError,
)
from folio_tracker.core.models import (
    FamilyMember,
    FamilyMemberId,
    HealthStatus,
    Holding,
    HoldingCreate,
    HoldingId,
    HoldingType,
    HoldingUpdate,
    PriceAlert,
    ProviderAttempt,
    QuoteResult,
    RefreshResult,
    Severity,
    SortDirection,
    Symbol,
)

__all__ = [
    # Type aliases
    "Symbol",
    "HoldingId",
    "FamilyMemberId",
    "QuoteResult",
    # Enums
    "HoldingType",
    "Severity",
    "SortDirection",
    "HealthStatus",
    # Holding models
    "Holding",
    "HoldingCreate",
    "HoldingUpdate",
    "FamilyMember",
    # Price models
    "PriceAlert",
    "ProviderAttempt",
    "RefreshResult",
    # Config
    "TrackerConfig",
    "MonitoringConfig",
    "ProvidersConfig",
    "ProviderOverride",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "FolioTrackerError",
    "ConfigError",
    "ProviderError",
    "RateLimitError",
    "StorageError",
    "HoldingNotFoundError",
    "FamilyMemberNotFoundError",
    "MonitorError",
    "RefreshError",
]

"""Custom exception classes for the application."""

from typing import Any


class OptimizerError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Pre-flight errors
class ConfigurationError(OptimizerError):
    """Required credentials or keys are missing."""

    pass


class TargetSelectionError(OptimizerError):
    """No item could be selected for optimization."""

    def __init__(self, message: str = "No pages to optimize") -> None:
        super().__init__(message)


class JobAlreadyRunningError(OptimizerError):
    """A job for this target (or the interactive slot) is already running."""

    def __init__(self, target_id: str) -> None:
        self.target_id = target_id
        super().__init__(f"Job already running for: {target_id}")


class InvalidPhaseTransitionError(OptimizerError):
    """Phase change that would break the forward-only job state machine."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Invalid phase transition: {current} -> {requested}")


# Soft warnings: logged and recorded on the job, never abort it
class SoftWarning(OptimizerError):
    """Base class for non-fatal failures in optional phases."""

    pass


class ResolutionSoftWarning(SoftWarning):
    """Existing remote entity could not be found or fetched."""

    pass


class AnalysisSoftWarning(SoftWarning):
    """Optional enrichment analysis failed."""

    pass


class MetadataSoftWarning(SoftWarning):
    """Best-effort SEO metadata update failed."""

    pass


# Fatal job errors
class GenerationError(OptimizerError):
    """Content synthesis failed or produced insufficient content."""

    pass


class PublishError(OptimizerError):
    """Create/update call to the content store failed."""

    pass


class JobTimeoutError(OptimizerError):
    """Bulk job exceeded its wall-clock budget."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Job timeout after {timeout_seconds:g}s")


class CancellationError(OptimizerError):
    """Interactive cancellation was requested for the running job."""

    def __init__(self, reason: str = "User cancelled") -> None:
        self.reason = reason
        super().__init__(f"Cancelled: {reason}")


# External API errors
class ExternalAPIError(OptimizerError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str, status_code: int | None = None) -> None:
        self.api_name = api_name
        self.status_code = status_code
        super().__init__(f"{api_name} API error: {message}")


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded", status_code=429)


class StoreAuthenticationError(ExternalAPIError):
    """Content store rejected the configured credentials."""

    def __init__(self, api_name: str, status_code: int) -> None:
        super().__init__(api_name, f"Authentication failed (HTTP {status_code})", status_code)


class EntityNotFoundError(ExternalAPIError):
    """Requested remote entity does not exist."""

    def __init__(self, api_name: str, entity: str) -> None:
        super().__init__(api_name, f"Not found: {entity}", status_code=404)


# Validation Errors
class ValidationError(OptimizerError):
    """Input validation failed."""

    pass

"""Error taxonomy shared by services and the HTTP layer."""
from typing import Optional


class PortfolioAIError(Exception):
    """Base error for the assistant pipeline."""


class ConfigurationMissing(PortfolioAIError):
    """No generation credential configured at all. Caller may supply their own."""


class CredentialInvalid(PortfolioAIError):
    """The provider rejected the credential."""


class ProviderTransient(PortfolioAIError):
    """Generic provider failure. Never retried automatically."""


class BackendUnavailable(PortfolioAIError):
    """Quota durable backend unreachable. Degraded transparently, never surfaced to end users."""


class QuotaExceeded(PortfolioAIError):
    """Free-tier quota used up for this identity until the window resets."""

    def __init__(self, limit: int, remaining: int = 0, reset_in: Optional[int] = None) -> None:
        super().__init__(f"quota exceeded (limit={limit}, reset_in={reset_in})")
        self.limit = limit
        self.remaining = remaining
        self.reset_in = reset_in


class EntityNotFound(PortfolioAIError):
    """Requested entity does not exist for this tenant."""


class EntityConflict(PortfolioAIError):
    """Write would violate a uniqueness or lifecycle rule."""


class InputTooLarge(PortfolioAIError):
    """Caller input exceeds the configured size bound."""

    def __init__(self, field: str, limit: int) -> None:
        super().__init__(f"{field} exceeds {limit} characters")
        self.field = field
        self.limit = limit

"""Exception taxonomy shared by services, stores and provider clients."""


class TrackerError(Exception):
    """Base class for all networth-tracker errors."""


class ValidationError(TrackerError):
    """Required input is missing or malformed; raised before any store access."""


class NotFoundError(TrackerError):
    """Resource does not exist or is not owned by the current principal."""


class UpstreamProviderError(TrackerError):
    """
    A wallet, brokerage-link or price provider call failed.

    Parameters
    ----------
    provider : str
        Provider name (e.g., 'moralis', 'plaid', 'coingecko')
    message : str
        Human readable failure description

    """

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class PersistenceError(TrackerError):
    """A store operation failed."""

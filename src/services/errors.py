"""Exception taxonomy for upstream and storage failures."""


class MarketPulseError(Exception):
    """Base class for errors raised by the market data core."""


class UpstreamUnavailable(MarketPulseError):
    """
    The upstream provider could not serve a request.

    Network errors, non-2xx responses, timeouts and rate limiting all collapse
    into this one kind: the recovery is always to fall back and retry next cycle.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedUpstreamPayload(UpstreamUnavailable):
    """The upstream answered, but the payload failed validation."""


class StoreUnavailable(MarketPulseError):
    """The time-series store failed; fatal to the current operation only."""

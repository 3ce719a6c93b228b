"""Exception types raised by the reconciliation jobs."""


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""


class ConfigurationError(ReconciliationError):
    """Required configuration is missing or invalid. Fatal before any batch work."""


class AlreadyResolvedError(ReconciliationError):
    """A historical rating already carries a resolution and cannot be re-resolved."""

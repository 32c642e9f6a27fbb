class MarketConfigError(Exception):
    """Base class for every fatal processor error."""


class ArgumentError(MarketConfigError):
    pass


class SafetyError(MarketConfigError):
    pass


class LoadError(MarketConfigError):
    pass


class ConsistencyError(MarketConfigError):
    pass


class DbError(MarketConfigError):
    pass

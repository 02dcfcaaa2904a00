"""Custom exceptions for Tripwire."""


class TripwireError(Exception):
    """Base exception for Tripwire."""


class ConfigurationError(TripwireError):
    """Configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""


class InvalidConfigError(ConfigurationError):
    """Configuration is invalid."""


class SecurityError(TripwireError):
    """Security-related errors."""


class AuthenticationError(SecurityError):
    """Authentication failed."""


class AuthorizationError(SecurityError):
    """Authorization failed."""


class AutomationError(TripwireError):
    """Errors raised by event, listener and action management."""


class NotFoundError(AutomationError):
    """Referenced record does not exist."""


class AlreadyExistsError(AutomationError):
    """A record with the same id already exists."""


class InvalidRequestError(AutomationError):
    """Request parameters are inconsistent."""


class SchedulingError(AutomationError):
    """An action could not be scheduled."""


class StorageError(TripwireError):
    """Storage-related errors."""


class DatabaseConnectionError(StorageError):
    """Database connection failed."""

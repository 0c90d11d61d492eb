from typing import Optional


class RepoHubException(Exception):
    """Base exception for all repohub errors."""
    pass

class ApiError(RepoHubException):
    """Raised by a platform adapter when repositories cannot be fetched."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

class UnauthorizedError(ApiError):
    """Raised when a platform rejects the token (HTTP 401)."""
    def __init__(self, message: str, status: int = 401):
        super().__init__(message, status=status)

class ConfigurationError(RepoHubException):
    """Raised when user input is rejected before anything is persisted."""
    pass

class EmptyTokenError(ConfigurationError):
    pass

class DuplicateTokenError(ConfigurationError):
    pass

class InvalidGroupNameError(ConfigurationError):
    pass

class DuplicateGroupError(ConfigurationError):
    pass

class PersistenceError(RepoHubException):
    """Raised when the key/value store cannot be read or written."""
    pass

class SchemaError(PersistenceError):
    """Raised when a persisted payload is unparsable or has an unknown version."""
    pass

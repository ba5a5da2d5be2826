"""Exception hierarchy for credential migration."""
from typing import Optional


class MigrationError(Exception):
    """Base exception for credential migration errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message} (context: {self.context})"
        return self.message


class StoreUnavailable(MigrationError):
    """Raised when no writable secret store is reachable."""
    pass


class StoreWriteFailure(MigrationError):
    """Raised when creating a secret or a domain fails."""
    pass


class PersistenceFailure(MigrationError):
    """Raised when a job or the global settings cannot be saved."""
    pass


class ChangeTrackingError(MigrationError):
    """Raised when a job already has an open change context."""
    pass

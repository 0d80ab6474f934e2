"""Custom exception hierarchy for tqkit.

Storage failures (constraint violations, lost connections) are raised by
SQLAlchemy and are not wrapped here.
"""


class TQKitError(Exception):
    """Base exception for all tqkit errors."""


# --- Configuration ---
class ConfigError(TQKitError):
    """Invalid or missing configuration."""


# --- Packages ---
class PackageError(TQKitError):
    """Pack discovery or registration error."""


class PackageLoadError(PackageError):
    """A pack module could not be imported or declared an invalid pack."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load pack from {source}: {reason}")


class PackageNotRegistered(PackageError):
    """``use_packages`` was called on an app built without ``add_packages``."""


# --- Services ---
class ServiceResolutionError(TQKitError):
    """A requested service has no registration or cannot be constructed."""

    def __init__(self, service_type: type, reason: str = "not registered"):
        self.service_type = service_type
        name = getattr(service_type, "__qualname__", repr(service_type))
        super().__init__(f"Cannot resolve service {name}: {reason}")


# --- Data access ---
class DataAccessError(TQKitError):
    """Misuse of the repository / unit-of-work API."""


class TransactionError(DataAccessError):
    """Explicit transaction state does not allow the requested operation."""

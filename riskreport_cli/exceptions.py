from __future__ import annotations


class RiskReportError(Exception):
    """Base exception with user-friendly message."""
    pass


class ConfigError(RiskReportError):
    pass


class ApiError(RiskReportError):
    pass


class AuthenticationError(ApiError):
    pass


class InvalidInput(RiskReportError):
    """Malformed enum value or out-of-range number."""
    pass


class NotFound(RiskReportError):
    """Referenced assessment, model, control or entry does not exist."""
    pass


class EmptyDataset(RiskReportError):
    """Report requested for a subject with no assessable entities."""
    pass


class ConflictWrite(RiskReportError):
    """A concurrent register-entry mutation lost the race."""
    pass

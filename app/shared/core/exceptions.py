from typing import Optional, Dict, Any


class KaijuBudgetException(Exception):
    """Base exception for all budget governor errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class AdapterError(KaijuBudgetException):
    """Raised when an external cloud adapter fails."""
    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ExternalAPIError(KaijuBudgetException):
    """Raised when an external API call times out or returns garbage."""
    def __init__(self, message: str, code: str = "external_api_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ConfigurationError(KaijuBudgetException):
    """Raised when budget configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class BudgetExceededError(KaijuBudgetException):
    """Raised by callers that turn a denied guard decision into an error."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="budget_exceeded", details=details)

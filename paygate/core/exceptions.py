"""
Exception hierarchy for the PayGate payment façade.

Every business outcome that can go wrong while validating, charging or
reversing a payment has a class here. Strategies and the processor convert
them into result values; the HTTP layer maps any that escape to a status code.

Design:
    - Each exception carries an `http_status_code` for automatic handler mapping.
    - Each exception carries an `error_code`, the machine-readable kind that is
      copied onto PaymentResult / RefundResult.
    - `to_dict()` returns full internal details (for logging).
    - `to_safe_dict()` returns a sanitized response (for client-facing APIs).
"""

from typing import Optional, Dict, Any


class BaseAppError(Exception):
    """Base exception for all application-specific errors"""

    http_status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: str = None, context: Dict[str, Any] = None):
        self.message = message
        self.details = details
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Full details for internal logging, never sent to the client."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "context": self.context,
        }

    def to_safe_dict(self) -> Dict[str, Any]:
        """Sanitized response safe for end-users, no internal details."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
        }


class PaymentValidationError(BaseAppError):
    """Raised when payment data fails validation (bad card number, missing email, ...)"""

    http_status_code: int = 422
    error_code: str = "validation_error"

    def __init__(self, message: str, field: str = None, errors: Optional[list] = None):
        self.field = field
        self.errors = list(errors) if errors else [message]
        context = {"errors": self.errors}
        if field:
            context["field"] = field

        details = f"Validation failed for field: {field}" if field else None
        super().__init__(message, details, context)

    def to_safe_dict(self) -> Dict[str, Any]:
        result = super().to_safe_dict()
        result["errors"] = self.errors
        if self.field:
            result["field"] = self.field
        return result


class ConfigurationError(BaseAppError):
    """Raised for configuration issues (missing credentials, invalid settings)"""

    http_status_code: int = 500
    error_code: str = "configuration_error"

    def __init__(self, message: str, config_key: str = None, expected_value: str = None):
        self.config_key = config_key
        self.expected_value = expected_value
        context = {}
        if config_key:
            context["config_key"] = config_key
        if expected_value:
            context["expected_value"] = expected_value

        details = f"Configuration error for: {config_key}" if config_key else None
        super().__init__(message, details, context)

    def to_safe_dict(self) -> Dict[str, Any]:
        """Never expose config internals to clients."""
        return {
            "error": "ConfigurationError",
            "error_code": self.error_code,
            "message": "A server configuration error occurred.",
        }


class BackendError(BaseAppError):
    """Raised when the settlement backend fails (network failure, bad response)"""

    http_status_code: int = 502
    error_code: str = "backend_error"

    def __init__(self, message: str, gateway: str = None, operation: str = None):
        self.gateway = gateway
        self.operation = operation
        context = {}
        if gateway:
            context["gateway"] = gateway
        if operation:
            context["operation"] = operation

        details = f"Gateway operation failed: {operation}" if operation else None
        super().__init__(message, details, context)


class PaymentDeclinedError(BackendError):
    """Raised when the backend definitively refuses the charge"""

    http_status_code: int = 402
    error_code: str = "payment_declined"

    def __init__(self, message: str = "Payment declined", gateway: str = None, decline_code: str = None):
        self.decline_code = decline_code
        super().__init__(message, gateway=gateway, operation="submit")
        if decline_code:
            self.context["decline_code"] = decline_code

    def to_safe_dict(self) -> Dict[str, Any]:
        result = super().to_safe_dict()
        if self.decline_code:
            result["decline_code"] = self.decline_code
        return result


class GatewayConnectionError(BackendError):
    """Raised when a session to the backend cannot be opened or is lost"""


class GatewayTimeoutError(BackendError):
    """Raised when a backend call exceeds its deadline"""

    http_status_code: int = 504
    error_code: str = "timeout"

    def __init__(self, gateway: str = None, operation: str = None, timeout: float = None):
        self.timeout = timeout
        super().__init__("timeout", gateway=gateway, operation=operation)
        if timeout is not None:
            self.context["timeout_seconds"] = timeout


class UnsupportedMethodError(BaseAppError):
    """Raised when no strategy is registered for a payment method identifier"""

    http_status_code: int = 400
    error_code: str = "unsupported_method"

    def __init__(self, method: str, supported: Optional[list] = None):
        self.method = method
        self.supported = sorted(supported) if supported else []
        super().__init__(
            f"Unsupported payment method: {method}",
            f"No strategy registered for '{method}'",
            {"method": method, "supported": self.supported},
        )

    def to_safe_dict(self) -> Dict[str, Any]:
        result = super().to_safe_dict()
        result["supported"] = self.supported
        return result


class NotFoundError(BaseAppError):
    """Raised when a requested resource is unknown or no longer in a usable state"""

    http_status_code: int = 404
    error_code: str = "not_found"

    def __init__(self, resource: str, identifier: str, reason: str = None):
        self.resource = resource
        self.identifier = identifier
        self.reason = reason
        message = f"{resource} not found"
        if reason:
            message = f"{resource} {reason}"
        super().__init__(
            message,
            f"{resource} with id '{identifier}' is not available",
            {"resource": resource, "identifier": identifier},
        )


class DatabaseError(BaseAppError):
    """Raised for ledger storage failures"""

    http_status_code: int = 500
    error_code: str = "database_error"

    def __init__(self, message: str, operation: str = None, database_error: str = None):
        self.operation = operation
        self.database_error = database_error
        context = {}
        if operation:
            context["operation"] = operation
        if database_error:
            context["database_error"] = database_error

        details = f"Failed database operation: {operation}" if operation else None
        super().__init__(message, details, context)

    def to_safe_dict(self) -> Dict[str, Any]:
        """Never expose operation names or DB errors to clients."""
        return {
            "error": "DatabaseError",
            "error_code": self.error_code,
            "message": "An internal error occurred. Please try again later.",
        }

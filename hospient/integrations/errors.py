"""
Error taxonomy for third-party integrations.

Every error carries a stable ``code`` that ends up in ``integration_logs.error_code``
and in the ``error_code`` field of failed adapter results.
"""

from __future__ import annotations


class IntegrationError(Exception):
    """Base exception for integration operations"""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code


# Config


class ConfigError(IntegrationError):
    """Integration configuration is unusable"""

    code = "CONFIG_ERROR"


class ConfigNotFound(ConfigError):
    """Integration not found"""

    code = "INTEGRATION_NOT_FOUND"


class ConfigMalformed(ConfigError):
    """Integration config or credentials are malformed"""

    code = "CONFIG_MALFORMED"


class ConfigInactive(ConfigError):
    """Integration is not active"""

    code = "INTEGRATION_INACTIVE"


# Transport


class TransportError(IntegrationError):
    """Third-party platform call failed"""

    code = "TRANSPORT_ERROR"


class TransportUnreachable(TransportError):
    """Third-party platform is unreachable"""

    code = "CONNECTION_ERROR"


class TransportRejected(TransportError):
    """Third-party platform rejected the request"""

    code = "REMOTE_REJECTED"

    def __init__(self, status: int, body: object = None, message: str = ""):
        super().__init__(message or f"Remote returned HTTP {status}")
        self.status = status
        self.body = body


# Records and storage


class ValidationError(IntegrationError):
    """Invalid data for the target schema"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "", field: str | None = None):
        super().__init__(message)
        self.field = field


class PersistenceError(IntegrationError):
    """Local storage is unavailable"""

    code = "PERSISTENCE_ERROR"


class SyncInProgressError(IntegrationError):
    """Another sync run holds the integration lock"""

    code = "SYNC_IN_PROGRESS"


class WebhookSignatureError(IntegrationError):
    """Webhook signature is missing or does not match"""

    code = "INVALID_SIGNATURE"

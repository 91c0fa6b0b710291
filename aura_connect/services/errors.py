# aura_connect/services/errors.py
from typing import Optional


class ConnectFlowError(Exception):
    """Base for every failure of the connect/callback flow.

    ``code`` is the machine-readable value carried to the dashboard's error page,
    ``status_code`` is used when the failure is reported as JSON instead.
    """

    code = "connect_failed"
    status_code = 400

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}


class MissingCode(ConnectFlowError):
    code = "missing_code"


class MissingState(ConnectFlowError):
    code = "missing_state"


class InvalidState(ConnectFlowError):
    code = "invalid_state"


class ExpiredState(ConnectFlowError):
    code = "expired_state"


class UnsupportedPlatform(ConnectFlowError):
    code = "unsupported_platform"
    status_code = 404


class TokenExchangeError(ConnectFlowError):
    code = "token_exchange_failed"
    status_code = 502


class LongTokenExchangeError(ConnectFlowError):
    code = "long_token_exchange_failed"
    status_code = 502


class ProviderReportedError(ConnectFlowError):
    code = "provider_error"
    status_code = 502


class TokenRefreshError(ConnectFlowError):
    code = "token_refresh_failed"
    status_code = 502


class NotConnected(ConnectFlowError):
    code = "not_connected"
    status_code = 409


class UserNotFound(ConnectFlowError):
    code = "user_not_found"
    status_code = 404


class PersistenceError(ConnectFlowError):
    code = "persistence_failed"
    status_code = 500


class AuxiliaryFetchFailure(ConnectFlowError):
    # never propagated out of the callback; recorded as a warning instead
    code = "auxiliary_fetch_failed"
    status_code = 502

# src/frontdoor_bff/errors.py

from typing import Optional

from fastapi import status


class FrontdoorBFFError(Exception):
    """
    Base class for failures surfaced to the browser.
    Carries only server-authored text; upstream bodies stay in the logs.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"
    message: str = "Internal server error."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail


class MissingCode(FrontdoorBFFError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "missing_code"
    message = "Missing code"


class TokenExchangeFailed(FrontdoorBFFError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "token_exchange_failed"
    message = "OAuth token exchange failed. Check server logs."


class NotAuthenticated(FrontdoorBFFError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "not_authenticated"
    message = "Not authenticated"


class SingleAccessFailed(FrontdoorBFFError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "singleaccess_failed"
    message = "Single access exchange failed."

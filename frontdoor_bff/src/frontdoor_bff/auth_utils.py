# src/frontdoor_bff/auth_utils.py
from typing import Optional
from urllib.parse import urlencode
import logging

from .config import Settings
from .errors import MissingCode, TokenExchangeFailed
from .session_data import AuthTokens
from .token_exchange import (
    ExchangeSuccess,
    MalformedProviderResponse,
    ProviderRejected,
    TokenExchangeClient,
    TransportFailure,
)

logger = logging.getLogger(__name__)


class OAuthFlowController:
    """Authorization-code flow against the configured Salesforce login host."""

    def __init__(self, settings: Settings, token_client: TokenExchangeClient):
        self.settings = settings
        self.token_client = token_client

    def build_auth_url(self) -> str:
        """
        Builds the Salesforce authorize URL.
        No state parameter is sent; the callback can't tell a forged request apart.
        """
        params = {
            "response_type": "code",
            "client_id": self.settings.CLIENT_ID or "",
            "redirect_uri": self.settings.REDIRECT_URI or "",
            "scope": self.settings.OAUTH_SCOPE,
        }
        auth_url = f"{self.settings.AUTHORIZE_URL}?{urlencode(params)}"
        logger.info("AUTH_UTILS: build_auth_url - redirect URI: %s", self.settings.REDIRECT_URI)
        return auth_url

    async def complete(
        self,
        code: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> AuthTokens:
        """
        Exchanges the callback's authorization code for tokens.
        One code, one attempt: the code is single-use at Salesforce.
        """
        if error:
            logger.warning("AUTH_UTILS: Salesforce returned an error to the callback: %s - %s", error, error_description)
        if not code or not code.strip():
            raise MissingCode()

        result = await self.token_client.exchange_authorization_code(code)

        if isinstance(result, ExchangeSuccess):
            return result.value
        if isinstance(result, ProviderRejected):
            if result.location:
                logger.error("AUTH_UTILS: token endpoint redirected to %s", result.location)
            logger.error(
                "AUTH_UTILS: token exchange rejected (%s): %s", result.status_code, result.error or "no error code"
            )
        elif isinstance(result, MalformedProviderResponse):
            logger.error("AUTH_UTILS: token exchange returned an unusable response: %s", result.reason)
        elif isinstance(result, TransportFailure):
            logger.error("AUTH_UTILS: token exchange transport failure: %s", result.reason)
        raise TokenExchangeFailed()

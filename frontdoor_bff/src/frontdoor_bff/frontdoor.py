# src/frontdoor_bff/frontdoor.py

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlparse

from .errors import NotAuthenticated, SingleAccessFailed
from .session_data import SessionData
from .token_exchange import (
    ExchangeSuccess,
    MalformedProviderResponse,
    ProviderRejected,
    TokenExchangeClient,
    TransportFailure,
)

logger = logging.getLogger(__name__)

FALLBACK_NOTE = "fallback (not recommended for prod)"


@dataclass(frozen=True)
class FrontdoorLink:
    url: str
    fallback: bool = False


def absolute_frontdoor_url(uri: str, instance_url: str) -> str:
    """Salesforce may hand back a path; anchor it on the org's instance URL."""
    if urlparse(uri).scheme in ("http", "https"):
        return uri
    base = instance_url.rstrip("/")
    return f"{base}{uri}" if uri.startswith("/") else f"{base}/{uri}"


def fallback_frontdoor_url(access_token: str, instance_url: str) -> str:
    # Embeds the live access token in the URL
    return f"{instance_url.rstrip('/')}/secur/frontdoor.jsp?sid={quote(access_token, safe='')}"


class FrontdoorBroker:
    def __init__(self, token_client: TokenExchangeClient):
        self.token_client = token_client

    async def derive(self, session: Optional[SessionData]) -> FrontdoorLink:
        if session is None or session.auth_tokens is None:
            raise NotAuthenticated()
        tokens = session.auth_tokens

        result = await self.token_client.exchange_for_single_access(tokens.access_token, tokens.instance_url)

        if isinstance(result, ExchangeSuccess):
            if result.value:
                return FrontdoorLink(url=absolute_frontdoor_url(result.value, tokens.instance_url))
            logger.warning(
                "FRONTDOOR: singleaccess for %s returned no URI; using frontdoor.jsp fallback",
                tokens.instance_url,
            )
            return FrontdoorLink(url=fallback_frontdoor_url(tokens.access_token, tokens.instance_url), fallback=True)

        # Only a successful exchange without a URI may fall back
        if isinstance(result, TransportFailure):
            if result.status_code:
                detail = f"Salesforce singleaccess endpoint returned HTTP {result.status_code}"
            elif result.reason == "timeout":
                detail = "Timed out contacting the Salesforce singleaccess endpoint"
            else:
                detail = "Could not reach the Salesforce singleaccess endpoint"
        elif isinstance(result, ProviderRejected):
            detail = f"Salesforce singleaccess endpoint rejected the request (HTTP {result.status_code})"
        elif isinstance(result, MalformedProviderResponse):
            detail = "Salesforce singleaccess endpoint returned an unusable response"
        else:
            detail = None
        raise SingleAccessFailed(detail)

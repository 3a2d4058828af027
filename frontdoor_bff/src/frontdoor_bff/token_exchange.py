# src/frontdoor_bff/token_exchange.py
"""
Outbound calls to Salesforce's OAuth endpoints.

Both calls return a tagged result instead of raising, so callers can tell
"Salesforce said no" (ProviderRejected, MalformedProviderResponse) apart from
"Salesforce could not be reached or errored" (TransportFailure).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from .config import Settings
from .session_data import AuthTokens

logger = logging.getLogger(__name__)

T = TypeVar("T")

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


@dataclass(frozen=True)
class ExchangeSuccess(Generic[T]):
    value: T
    status_code: int = 200


@dataclass(frozen=True)
class ProviderRejected:
    status_code: int
    error: Optional[str] = None
    error_description: Optional[str] = None
    location: Optional[str] = None  # captured when Salesforce answers with a redirect


@dataclass(frozen=True)
class MalformedProviderResponse:
    status_code: int
    reason: str


@dataclass(frozen=True)
class TransportFailure:
    reason: str
    status_code: Optional[int] = None  # set when Salesforce answered 5xx


ExchangeResult = Union[ExchangeSuccess, ProviderRejected, MalformedProviderResponse, TransportFailure]


class TokenResponse(BaseModel):
    """The fields of /services/oauth2/token we rely on."""
    access_token: str
    instance_url: str
    refresh_token: Optional[str] = None
    id: Optional[str] = None
    issued_at: Optional[Union[str, int]] = None

    @field_validator("refresh_token", "id", mode="before")
    @classmethod
    def drop_non_string(cls, v: Any) -> Any:
        # Optional extras never fail the exchange
        return v if isinstance(v, str) else None

    @field_validator("issued_at", mode="before")
    @classmethod
    def drop_unusable_issued_at(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            return None
        return v

    def to_auth_tokens(self) -> AuthTokens:
        return AuthTokens(
            access_token=self.access_token,
            instance_url=self.instance_url,
            refresh_token=self.refresh_token,
            identity_id=self.id,
            issued_at=self.issued_at,
        )


NOT_JSON = object()


def _json_or_none(response: httpx.Response) -> Any:
    data = _json_or_sentinel(response)
    return None if data is NOT_JSON else data


def _json_or_sentinel(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return NOT_JSON


def extract_frontdoor_uri(response: httpx.Response) -> Optional[str]:
    """
    Salesforce returns the one-time URI as frontdoor_uri, frontdoor_url,
    a bare JSON string or a plain-text body depending on org and API version.
    """
    data = _json_or_sentinel(response)
    if isinstance(data, dict):
        uri = data.get("frontdoor_uri") or data.get("frontdoor_url")
    elif isinstance(data, str):
        uri = data
    elif data is NOT_JSON:
        uri = response.text
    else:
        uri = None
    if not isinstance(uri, str) or not uri.strip():
        return None
    return uri.strip()


class TokenExchangeClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # A 3xx from these endpoints means misconfiguration, never something to follow
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            follow_redirects=False,
        )

    async def _post_form(self, url: str, form: dict) -> Union[httpx.Response, TransportFailure]:
        async with self._client() as client:
            try:
                response = await client.post(url, data=form, headers=FORM_HEADERS)
            except httpx.TimeoutException as e:
                logger.error("TOKEN_EXCHANGE: timed out calling %s: %r", url, e)
                return TransportFailure(reason="timeout")
            except httpx.HTTPError as e:
                logger.error("TOKEN_EXCHANGE: request to %s failed: %r", url, e)
                return TransportFailure(reason=type(e).__name__)

        if response.status_code >= 500:
            logger.error(
                "TOKEN_EXCHANGE: %s answered %s: %s", url, response.status_code, response.text[:500]
            )
            return TransportFailure(reason="provider_error", status_code=response.status_code)
        return response

    def _rejected(self, url: str, response: httpx.Response) -> ProviderRejected:
        location = response.headers.get("location")
        data = _json_or_none(response)
        error = error_description = None
        if isinstance(data, dict):
            error = data.get("error")
            error_description = data.get("error_description")
        if response.is_redirect:
            logger.error(
                "TOKEN_EXCHANGE: %s redirected (%s) to %s; check SF_LOGIN_URL / instance URL",
                url, response.status_code, location,
            )
        else:
            logger.error(
                "TOKEN_EXCHANGE: %s rejected the request (%s): %s %s",
                url, response.status_code, error, error_description,
            )
        return ProviderRejected(
            status_code=response.status_code,
            error=error,
            error_description=error_description,
            location=location,
        )

    async def exchange_authorization_code(self, code: str) -> ExchangeResult:
        """POST the authorization code to the token endpoint; validates the token response."""
        url = self.settings.TOKEN_URL
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.settings.CLIENT_ID or "",
            "client_secret": self.settings.CLIENT_SECRET or "",
            "redirect_uri": self.settings.REDIRECT_URI or "",
        }
        response = await self._post_form(url, form)
        if isinstance(response, TransportFailure):
            return response
        if not response.is_success:
            return self._rejected(url, response)

        data = _json_or_none(response)
        if not isinstance(data, dict):
            logger.error("TOKEN_EXCHANGE: token response from %s was not a JSON object", url)
            return MalformedProviderResponse(status_code=response.status_code, reason="body is not a JSON object")
        try:
            tokens = TokenResponse.model_validate(data).to_auth_tokens()
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            logger.error("TOKEN_EXCHANGE: token response failed validation on %s", fields)
            return MalformedProviderResponse(
                status_code=response.status_code,
                reason=f"invalid or missing fields: {', '.join(fields)}",
            )
        logger.info("TOKEN_EXCHANGE: authorization code exchanged for instance %s", tokens.instance_url)
        return ExchangeSuccess(value=tokens, status_code=response.status_code)

    async def exchange_for_single_access(self, access_token: str, instance_url: str) -> ExchangeResult:
        """
        POST the access token to the org's singleaccess endpoint.
        Success carries the one-time URI, or None when Salesforce returned none.
        """
        url = f"{instance_url.rstrip('/')}/services/oauth2/singleaccess"
        response = await self._post_form(url, {"access_token": access_token})
        if isinstance(response, TransportFailure):
            return response
        if not response.is_success:
            return self._rejected(url, response)
        return ExchangeSuccess(value=extract_frontdoor_uri(response), status_code=response.status_code)

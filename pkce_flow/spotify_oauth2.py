from __future__ import annotations

import urllib.parse

import httpx

from pkce_flow.errors import TokenExchangeError
from pkce_flow.models import TokenRecord
from spotify_login.constants import (
    LOGGER,
    LOOPBACK_HOST,
    SPOTIFY_AUTHORIZE_URL,
    SPOTIFY_TOKEN_URL,
)
from spotify_login.http import HTTP_ERROR, describe_error_response


def redirect_uri_for(port: int) -> str:
    return f"http://{LOOPBACK_HOST}:{port}/callback"


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str] | tuple[str, ...],
    state: str,
    code_challenge: str,
    *,
    authorize_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    query = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
        "state": state,
        "scope": " ".join(scopes),
    }
    return f"{authorize_url}?{urllib.parse.urlencode(query, quote_via=urllib.parse.quote)}"


async def exchange_code(
    code: str,
    code_verifier: str,
    client_id: str,
    port: int,
    *,
    token_url: str = SPOTIFY_TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenRecord:
    """Trade an authorization code for tokens at the token endpoint.

    No client secret is sent; the PKCE ``code_verifier`` proves the caller
    started the flow. The request is not retried.

    Raises:
        TokenExchangeError: the endpoint rejected the code, could not be
            reached, or answered with an unusable body.
    """
    payload = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri_for(port),
        "client_id": client_id,
        "code_verifier": code_verifier,
    }

    own_client = client is None
    http_client = client or httpx.AsyncClient(timeout=30.0)

    try:
        response = await http_client.post(
            token_url,
            data=payload,
            headers={"Accept": "application/json"},
        )
        if response.is_error:
            kind, message = await describe_error_response(response)
            raise TokenExchangeError(message, kind=kind, status_code=response.status_code)
        body = response.json()
    except httpx.HTTPError as error:
        raise TokenExchangeError(
            f"Token request failed: {error}", kind=HTTP_ERROR
        ) from error
    except ValueError as error:
        raise TokenExchangeError(
            f"Token response is not valid JSON: {error}", kind=HTTP_ERROR
        ) from error
    finally:
        if own_client:
            await http_client.aclose()

    if not isinstance(body, dict):
        raise TokenExchangeError("Token response must be a JSON object.", kind=HTTP_ERROR)
    try:
        record = TokenRecord.from_payload(body)
    except ValueError as error:
        raise TokenExchangeError(str(error), kind=HTTP_ERROR) from error

    LOGGER.info("Exchanged authorization code expires_at=%s", record.expires_at)
    return record

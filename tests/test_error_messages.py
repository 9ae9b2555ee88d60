import httpx
import pytest

from spotify_login.http import classify_error_body, describe_error_response


def test_oauth_error_description() -> None:
    body = '{"error":"invalid_grant","error_description":"bad code"}'

    assert classify_error_body(400, body) == ("oauth_error", "Spotify OAuth error: bad code")


def test_oauth_error_description_not_a_string() -> None:
    body = '{"error":"invalid_grant","error_description":null}'

    assert classify_error_body(400, body) == (
        "oauth_error",
        "Spotify OAuth error: Unknown error",
    )


def test_api_error_message() -> None:
    body = '{"error":{"status":401,"message":"Invalid access token"}}'

    assert classify_error_body(401, body) == (
        "api_error",
        "Spotify API error: Invalid access token",
    )


def test_bare_error_string() -> None:
    assert classify_error_body(400, '{"error":"invalid_client"}') == (
        "api_error",
        "Spotify error: invalid_client",
    )


def test_json_without_error_fields() -> None:
    assert classify_error_body(500, '{"detail":"boom"}') == (
        "http_error",
        'HTTP 500 - {"detail":"boom"}',
    )


def test_non_object_json() -> None:
    assert classify_error_body(500, "[1, 2]") == ("http_error", "HTTP 500 - [1, 2]")


def test_non_json_body() -> None:
    assert classify_error_body(503, "upstream unavailable") == (
        "http_error",
        "HTTP 503 - upstream unavailable",
    )


@pytest.mark.asyncio
async def test_describe_error_response() -> None:
    response = httpx.Response(
        400,
        request=httpx.Request("POST", "https://accounts.spotify.com/api/token"),
        json={"error": "invalid_grant", "error_description": "Invalid authorization code"},
    )

    assert await describe_error_response(response) == (
        "oauth_error",
        "Spotify OAuth error: Invalid authorization code",
    )

from __future__ import annotations

import logging

LOGGER = logging.getLogger("spotify_login.auth")
APP_VERSION = "0.1.0"

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_PORTS = (8888, 8889, 8890, 8891, 8892, 8893, 8894, 8895, 8896, 8897)

SPOTIFY_ACCOUNTS_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_URL}/api/token"

SPOTIFY_SCOPES = (
    "streaming",
    "user-read-email",
    "user-read-private",
    "user-library-read",
    "user-library-modify",
    "user-read-playback-state",
    "user-modify-playback-state",
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-public",
    "playlist-modify-private",
)

VERIFIER_LENGTH = 128
STATE_LENGTH = 16
# Stored tokens are treated as expired this many seconds early.
TOKEN_EXPIRY_BUFFER_SECONDS = 300

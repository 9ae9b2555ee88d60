from __future__ import annotations

import asyncio
import functools
import os
import sys
import webbrowser
from collections.abc import Callable

from pkce_flow import spotify_oauth2
from pkce_flow.flow import FlowCoordinator, NotifyFn
from pkce_flow.models import AuthOutcome
from pkce_flow.ports import PortAllocator
from pkce_flow.sessions import SessionRegistry
from pkce_flow.token_store import FileTokenStore, TokenStore
from spotify_login.constants import APP_VERSION, LOGGER
from spotify_login.env import AuthSettings, is_truthy, load_env, setup_logging, validate_env


def print_outcome(outcome: AuthOutcome) -> None:
    if outcome.success:
        print("Signed in to Spotify.")
    else:
        print(f"Spotify sign-in failed: {outcome.error}", file=sys.stderr)


def create_coordinator(
    settings: AuthSettings,
    *,
    token_store: TokenStore | None = None,
    notify: NotifyFn = print_outcome,
) -> FlowCoordinator:
    registry = SessionRegistry(
        PortAllocator(settings.ports),
        session_ttl_seconds=settings.session_ttl,
    )
    return FlowCoordinator(
        registry,
        notify=notify,
        exchange_code_fn=functools.partial(
            spotify_oauth2.exchange_code, token_url=settings.token_url
        ),
        token_store=token_store,
        authorize_url=settings.authorize_url,
        callback_timeout=settings.callback_timeout,
    )


async def run_login(
    settings: AuthSettings,
    store: TokenStore,
    *,
    force: bool = False,
    open_browser: Callable[[str], object] = webbrowser.open,
) -> bool:
    cached = await store.load()
    if cached is not None and not force:
        LOGGER.info("Using stored tokens valid until %s", cached.expires_at)
        print("Already signed in to Spotify.")
        return True

    coordinator = create_coordinator(settings, token_store=store)
    outcome = await coordinator.login(settings.client_id, open_browser=open_browser)
    return outcome.success


async def run_logout(store: TokenStore) -> None:
    await store.clear()
    print("Signed out of Spotify.")


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    command = args[0] if args else "login"
    if command not in {"login", "logout"}:
        print(f"usage: spotify-login [login|logout]  (version {APP_VERSION})", file=sys.stderr)
        raise SystemExit(2)

    load_env()
    setup_logging()
    settings = AuthSettings.from_env()
    store = FileTokenStore(settings.token_store_path)

    try:
        if command == "logout":
            asyncio.run(run_logout(store))
            return
        validate_env()
        force = is_truthy(os.getenv("SPOTIFY_AUTH_FORCE_LOGIN"))
        succeeded = asyncio.run(run_login(settings, store, force=force))
    except RuntimeError as error:
        print(error, file=sys.stderr)
        raise SystemExit(1)

    if not succeeded:
        raise SystemExit(1)


if __name__ == "__main__":
    main()

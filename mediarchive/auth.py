"""Out-of-band OAuth1 PIN exchange for obtaining long-lived access keys."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import requests
from requests_oauthlib import OAuth1Session

from .config import TwitterCredentials
from .core import ArchiveError

logger = logging.getLogger(__name__)

REQUEST_TOKEN_URL = "https://api.twitter.com/oauth/request_token"
AUTHORIZE_URL = "https://api.twitter.com/oauth/authorize"
ACCESS_TOKEN_URL = "https://api.twitter.com/oauth/access_token"


class AuthorizationError(ArchiveError):
    """The PIN-based authorization exchange failed."""


@dataclass(frozen=True, slots=True)
class AccessToken:
    key: str
    secret: str


def authorize_pin(
    credentials: TwitterCredentials,
    *,
    read_pin: Callable[[str], str],
) -> AccessToken:
    """Exchange a user-entered PIN for an access key/secret pair.

    ``read_pin`` receives the authorization URL the user has to open and must
    return the PIN shown there.
    """
    credentials.require_consumer()
    oauth = OAuth1Session(
        credentials.consumer_key,
        client_secret=credentials.consumer_secret,
        callback_uri="oob",
    )
    try:
        oauth.fetch_request_token(REQUEST_TOKEN_URL)
    except (ValueError, requests.exceptions.RequestException) as exc:
        raise AuthorizationError(f"request token: {exc}") from exc

    authorize_url = oauth.authorization_url(AUTHORIZE_URL)
    pin = read_pin(authorize_url).strip()
    if not pin:
        raise AuthorizationError("read PIN: no PIN entered")

    try:
        tokens = oauth.fetch_access_token(ACCESS_TOKEN_URL, verifier=pin)
    except (ValueError, requests.exceptions.RequestException) as exc:
        raise AuthorizationError(f"get access token: {exc}") from exc

    key = tokens.get("oauth_token")
    secret = tokens.get("oauth_token_secret")
    if not key or not secret:
        raise AuthorizationError("get access token: response did not include an access token")
    logger.debug("Obtained access token for user %s", tokens.get("screen_name") or "?")
    return AccessToken(key=key, secret=secret)


__all__ = ["AccessToken", "AuthorizationError", "authorize_pin"]

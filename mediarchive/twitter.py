"""Twitter API v2 timeline access exposed as a paginated media source."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List

import requests
from requests_oauthlib import OAuth1

from .config import TwitterCredentials
from .core import EmptyVariantSet, FeedFetchError, Page, UnresolvedMedia

logger = logging.getLogger(__name__)

API_BASE = "https://api.twitter.com/2"
DEFAULT_USER_AGENT = "mediarchive/0.1"
TIMELINE_PAGE_SIZE = 100
MIN_TIMELINE_PAGE_SIZE = 5
REQUEST_TIMEOUT_SECONDS = 30

STATIC_IMAGE_TYPES = {
    "photo",
    # Accepted alongside "photo"; almost certainly a misspelling of "gif".
    "git",
}
VARIANT_MEDIA_TYPES = {"video", "animated_gif"}


def build_session(credentials: TwitterCredentials, *, user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    credentials.require_access()
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "application/json",
        }
    )
    session.auth = OAuth1(
        credentials.consumer_key,
        client_secret=credentials.consumer_secret,
        resource_owner_key=credentials.access_key,
        resource_owner_secret=credentials.access_secret,
    )
    return session


def _describe_rate_limit(response: requests.Response) -> str:
    reset = response.headers.get("x-rate-limit-reset") if response.headers else None
    if not reset:
        return "rate limited (HTTP 429)"
    try:
        reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return "rate limited (HTTP 429)"
    return f"rate limited (HTTP 429) until {reset_at.isoformat()}"


def fetch_json(
    session: requests.Session,
    url: str,
    *,
    params: dict | None = None,
    context: str,
) -> Any:
    try:
        response = session.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as exc:
        raise FeedFetchError(f"{context}: {exc}") from exc

    if response.status_code == 429:
        raise FeedFetchError(f"{context}: {_describe_rate_limit(response)}")

    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as exc:
        raise FeedFetchError(f"{context}: {exc}") from exc

    try:
        return response.json()
    except ValueError as exc:
        raise FeedFetchError(f"{context}: invalid JSON from {url}: {exc}") from exc


def _first_error_detail(payload: dict[str, Any]) -> str:
    errors = payload.get("errors") or []
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("detail") or errors[0].get("title") or "")
    return ""


def find_user_id(session: requests.Session, screen_name: str) -> str:
    """Resolve a screen name (with or without ``@``) to its numeric user id."""
    name = screen_name.strip().lstrip("@")
    if not name:
        raise FeedFetchError("lookup user: screen name is empty")
    payload = fetch_json(session, f"{API_BASE}/users/by/username/{name}", context="lookup user")
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not data.get("id"):
        detail = _first_error_detail(payload) if isinstance(payload, dict) else ""
        raise FeedFetchError(f"lookup user: @{name} not found" + (f" ({detail})" if detail else ""))
    return str(data["id"])


def select_variant_url(media: dict[str, Any]) -> str:
    """Return the URL of the highest-bitrate rendition of a video item."""
    variants = [v for v in media.get("variants") or [] if isinstance(v, dict) and v.get("url")]
    if not variants:
        raise EmptyVariantSet(f"media {media.get('media_key')!r} has no video variants")
    best = variants[0]
    for variant in variants:
        if (variant.get("bit_rate") or 0) > (best.get("bit_rate") or 0):
            best = variant
    return str(best["url"])


def _index_media(media_items: list[Any]) -> dict[str, str | UnresolvedMedia]:
    media_urls: dict[str, str | UnresolvedMedia] = {}
    for media in media_items:
        if not isinstance(media, dict):
            continue
        key = media.get("media_key")
        media_type = media.get("type")
        if not key:
            continue
        if media_type in STATIC_IMAGE_TYPES:
            if media.get("url"):
                media_urls[key] = str(media["url"])
            else:
                logger.debug("Media %s has no URL; skipping", key)
        elif media_type in VARIANT_MEDIA_TYPES:
            try:
                media_urls[key] = select_variant_url(media)
            except EmptyVariantSet as exc:
                media_urls[key] = UnresolvedMedia(exc)
        else:
            logger.debug("Ignoring media %s of unsupported type %r", key, media_type)
    return media_urls


def extract_media_urls(payload: dict[str, Any]) -> List[str | UnresolvedMedia]:
    """Flatten a timeline response into media URLs, newest first.

    Tweets arrive newest first, but a tweet's attachments are listed in
    posting order, so each tweet's attachments are reversed. Videos without
    renditions are kept as :class:`UnresolvedMedia` so they only fail the run
    if the walk actually reaches them.
    """
    includes = payload.get("includes") or {}
    media_urls = _index_media(includes.get("media") or [])
    if not media_urls:
        return []

    urls: List[str | UnresolvedMedia] = []
    for tweet in payload.get("data") or []:
        attachments = tweet.get("attachments") if isinstance(tweet, dict) else None
        if not isinstance(attachments, dict):
            continue
        for key in reversed(attachments.get("media_keys") or []):
            url = media_urls.get(key)
            if url is None:
                logger.debug("Tweet %s references unknown media %s", tweet.get("id"), key)
                continue
            urls.append(url)
    return urls


class TimelineMediaSource:
    """Pages through a user's tweets and yields the attached media URLs."""

    def __init__(self, session: requests.Session, user_id: str, *, page_size: int = TIMELINE_PAGE_SIZE) -> None:
        self.session = session
        self.user_id = user_id
        self.page_size = max(MIN_TIMELINE_PAGE_SIZE, min(int(page_size), TIMELINE_PAGE_SIZE))

    def fetch_page(self, cursor: str | None) -> Page:
        params: dict[str, Any] = {
            "expansions": "attachments.media_keys",
            "tweet.fields": "created_at",
            "media.fields": "url,media_key,variants",
            "max_results": self.page_size,
        }
        if cursor:
            params["pagination_token"] = cursor

        payload = fetch_json(
            self.session,
            f"{API_BASE}/users/{self.user_id}/tweets",
            params=params,
            context="fetch timeline",
        )
        if not isinstance(payload, dict):
            raise FeedFetchError("fetch timeline: unexpected response shape")

        next_token = (payload.get("meta") or {}).get("next_token") or None
        urls = extract_media_urls(payload)
        logger.debug("Timeline page yielded %d media URL(s); next_token=%s", len(urls), next_token)
        return Page(references=tuple(urls), next_cursor=next_token, has_more=next_token is not None)


__all__ = [
    "API_BASE",
    "DEFAULT_USER_AGENT",
    "TimelineMediaSource",
    "build_session",
    "extract_media_urls",
    "fetch_json",
    "find_user_id",
    "select_variant_url",
]

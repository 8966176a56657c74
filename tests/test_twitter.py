from __future__ import annotations

from typing import Any

import pytest

import requests
from requests_oauthlib import OAuth1

from mediarchive.config import ConfigError, TwitterCredentials
from mediarchive.core import EmptyVariantSet, FeedFetchError, UnresolvedMedia
from mediarchive.twitter import (
    API_BASE,
    TimelineMediaSource,
    build_session,
    extract_media_urls,
    find_user_id,
    select_variant_url,
)


class FakeJsonResponse:
    def __init__(self, payload: Any, *, status_code: int = 200, headers: dict[str, str] | None = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeJsonSession:
    def __init__(self, responses: list[FakeJsonResponse]) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, dict | None]] = []

    def get(self, url: str, *, params: dict | None = None, timeout: int = 30):  # noqa: D401
        self.calls.append((url, dict(params) if params else None))
        assert self._responses, "Unexpected additional request"
        return self._responses.pop(0)


def timeline_payload(next_token: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "data": [
            {"id": "200", "attachments": {"media_keys": ["3_a", "3_b"]}},
            {"id": "150", "text": "no media here"},
            {"id": "100", "attachments": {"media_keys": ["7_v"]}},
        ],
        "includes": {
            "media": [
                {"media_key": "3_a", "type": "photo", "url": "https://pbs.twimg.com/media/A.jpg"},
                {"media_key": "3_b", "type": "photo", "url": "https://pbs.twimg.com/media/B.jpg"},
                {
                    "media_key": "7_v",
                    "type": "video",
                    "variants": [
                        {"content_type": "application/x-mpegURL", "url": "https://video.twimg.com/v/pl.m3u8"},
                        {"bit_rate": 832000, "content_type": "video/mp4", "url": "https://video.twimg.com/v/640.mp4"},
                        {"bit_rate": 2176000, "content_type": "video/mp4", "url": "https://video.twimg.com/v/1280.mp4"},
                        {"bit_rate": 256000, "content_type": "video/mp4", "url": "https://video.twimg.com/v/320.mp4"},
                    ],
                },
            ]
        },
        "meta": {"result_count": 3},
    }
    if next_token:
        payload["meta"]["next_token"] = next_token
    return payload


def test_extract_media_urls_reverses_attachments_within_each_tweet():
    urls = extract_media_urls(timeline_payload())

    assert urls == [
        "https://pbs.twimg.com/media/B.jpg",
        "https://pbs.twimg.com/media/A.jpg",
        "https://video.twimg.com/v/1280.mp4",
    ]


def test_extract_media_urls_treats_git_token_as_photo_and_skips_unknown_keys():
    payload = {
        "data": [{"id": "1", "attachments": {"media_keys": ["k1", "missing", "k2"]}}],
        "includes": {
            "media": [
                {"media_key": "k1", "type": "git", "url": "https://pbs.twimg.com/media/one.png"},
                {"media_key": "k2", "type": "photo", "url": "https://pbs.twimg.com/media/two.png"},
                {"media_key": "k3", "type": "poll"},
            ]
        },
    }

    assert extract_media_urls(payload) == [
        "https://pbs.twimg.com/media/two.png",
        "https://pbs.twimg.com/media/one.png",
    ]


def test_extract_media_urls_without_includes_is_empty():
    assert extract_media_urls({"data": [{"id": "1"}], "meta": {}}) == []


def test_select_variant_url_requires_at_least_one_variant():
    with pytest.raises(EmptyVariantSet):
        select_variant_url({"media_key": "7_v", "type": "video", "variants": []})


def test_extract_media_urls_defers_video_without_variants():
    urls = extract_media_urls(
        {
            "data": [{"id": "1", "attachments": {"media_keys": ["3_a", "7_v"]}}],
            "includes": {
                "media": [
                    {"media_key": "3_a", "type": "photo", "url": "https://pbs.twimg.com/media/A.jpg"},
                    {"media_key": "7_v", "type": "video", "variants": []},
                ]
            },
        }
    )

    assert len(urls) == 2
    unresolved, photo = urls
    assert isinstance(unresolved, UnresolvedMedia)
    assert isinstance(unresolved.error, EmptyVariantSet)
    assert photo == "https://pbs.twimg.com/media/A.jpg"


def test_timeline_source_threads_cursor_and_reports_continuation():
    session = FakeJsonSession(
        [
            FakeJsonResponse(timeline_payload(next_token="tok-2")),
            FakeJsonResponse(timeline_payload()),
        ]
    )
    source = TimelineMediaSource(session, "42")

    first = source.fetch_page(None)
    second = source.fetch_page(first.next_cursor)

    assert first.has_more is True
    assert first.next_cursor == "tok-2"
    assert len(first.references) == 3
    assert second.has_more is False
    assert second.next_cursor is None

    (first_url, first_params), (second_url, second_params) = session.calls
    assert first_url == f"{API_BASE}/users/42/tweets"
    assert first_params["expansions"] == "attachments.media_keys"
    assert first_params["media.fields"] == "url,media_key,variants"
    assert first_params["max_results"] == 100
    assert "pagination_token" not in first_params
    assert second_params["pagination_token"] == "tok-2"


def test_timeline_source_clamps_page_size():
    assert TimelineMediaSource(object(), "1", page_size=1000).page_size == 100
    assert TimelineMediaSource(object(), "1", page_size=1).page_size == 5


def test_timeline_source_reports_rate_limit():
    session = FakeJsonSession(
        [FakeJsonResponse({}, status_code=429, headers={"x-rate-limit-reset": "1700000000"})]
    )

    with pytest.raises(FeedFetchError, match=r"fetch timeline: rate limited \(HTTP 429\) until 2023-11-14"):
        TimelineMediaSource(session, "42").fetch_page(None)


def test_timeline_source_wraps_http_and_decode_errors():
    session = FakeJsonSession(
        [
            FakeJsonResponse({}, status_code=401),
            FakeJsonResponse(ValueError("Expecting value")),
        ]
    )
    source = TimelineMediaSource(session, "42")

    with pytest.raises(FeedFetchError, match="401"):
        source.fetch_page(None)
    with pytest.raises(FeedFetchError, match="invalid JSON"):
        source.fetch_page(None)


def test_timeline_source_wraps_network_errors():
    class OfflineSession:
        def get(self, url, *, params=None, timeout=30):
            raise requests.exceptions.ConnectionError("network unreachable")

    with pytest.raises(FeedFetchError, match="network unreachable"):
        TimelineMediaSource(OfflineSession(), "42").fetch_page("tok")


def test_find_user_id_resolves_screen_name():
    session = FakeJsonSession([FakeJsonResponse({"data": {"id": "2244994945", "username": "TwitterDev"}})])

    assert find_user_id(session, "@TwitterDev") == "2244994945"
    assert session.calls[0][0] == f"{API_BASE}/users/by/username/TwitterDev"


def test_find_user_id_reports_missing_account():
    session = FakeJsonSession(
        [FakeJsonResponse({"errors": [{"detail": "Could not find user with username: [nobody]."}]})]
    )

    with pytest.raises(FeedFetchError, match="@nobody not found"):
        find_user_id(session, "nobody")


def test_build_session_signs_requests_with_oauth1():
    credentials = TwitterCredentials("ck", "cs", "ak", "as")

    session = build_session(credentials, user_agent="tests/1.0")

    assert isinstance(session.auth, OAuth1)
    assert session.headers["User-Agent"] == "tests/1.0"


def test_build_session_requires_access_keys():
    with pytest.raises(ConfigError, match="access_key, access_secret"):
        build_session(TwitterCredentials("ck", "cs"))

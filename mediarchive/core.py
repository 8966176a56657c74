"""Incremental media archival: collect new references, then replay them oldest-first."""
from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, List, Protocol
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

PACING_DELAY_SECONDS = 1.0
DOWNLOAD_TIMEOUT_SECONDS = 60
DOWNLOAD_CHUNK_SIZE = 8192
PARTIAL_SUFFIX = ".part"

PROGRESS_LOGGER_NAME = "mediarchive.progress"
DIAGNOSTIC_LOGGER_NAME = "mediarchive.diagnostic"


class ArchiveError(RuntimeError):
    """Base class for every failure raised by the archiver."""


class FeedFetchError(ArchiveError):
    """The remote feed could not be read (network, auth, rate limit, payload)."""


class EmptyVariantSet(FeedFetchError):
    """A video item was returned without any downloadable rendition."""


class RetrievalError(ArchiveError):
    """A media payload could not be downloaded."""


class StorageError(ArchiveError):
    """A media payload could not be written to the destination directory."""


class ReferenceParseError(ArchiveError):
    """A media locator is not a usable http(s) URL."""


class ArchiveCancelled(ArchiveError):
    """The run was cancelled from outside."""


@dataclass(frozen=True, slots=True)
class MediaReference:
    """Locator for one media item plus the filename it is archived under."""

    url: str

    @classmethod
    def parse(cls, raw: Any) -> "MediaReference":
        candidate = str(raw or "").strip()
        parsed = urlparse(candidate)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ReferenceParseError(f"parse url: {candidate!r} is not an absolute http(s) URL")
        name = PurePosixPath(parsed.path).name
        if not name or name in {".", ".."}:
            raise ReferenceParseError(f"parse url: {candidate!r} has no file name in its path")
        return cls(candidate)

    @property
    def filename(self) -> str:
        return PurePosixPath(urlparse(self.url).path).name


@dataclass(frozen=True, slots=True)
class UnresolvedMedia:
    """Feed item whose locator could not be produced; raised once the walk reaches it."""

    error: ArchiveError


@dataclass(frozen=True, slots=True)
class Page:
    """One page of the feed, newest reference first."""

    references: tuple[str | UnresolvedMedia, ...]
    next_cursor: str | None = None
    has_more: bool = False


class MediaSource(Protocol):
    def fetch_page(self, cursor: str | None) -> Page:
        ...


class ArchiveLog(Protocol):
    """Two-channel narration used by the archiver."""

    def narrate(self, message: str, *args: Any) -> None:
        ...

    def notice(self, message: str, *args: Any) -> None:
        ...


@dataclass(slots=True)
class ChannelLog:
    """Routes narration and notices to two :mod:`logging` channels."""

    primary: logging.Logger = field(default_factory=lambda: logging.getLogger(PROGRESS_LOGGER_NAME))
    diagnostic: logging.Logger = field(default_factory=lambda: logging.getLogger(DIAGNOSTIC_LOGGER_NAME))

    def narrate(self, message: str, *args: Any) -> None:
        self.primary.info(message, *args)

    def notice(self, message: str, *args: Any) -> None:
        self.diagnostic.info(message, *args)


@dataclass(slots=True)
class ArchiveOptions:
    """Settings shared by one archival run."""

    dest_dir: Path
    overwrite: bool = False
    delay: float = PACING_DELAY_SECONDS

    def __post_init__(self) -> None:
        self.dest_dir = Path(self.dest_dir)
        self.delay = max(float(self.delay), 0.0)


@dataclass(slots=True)
class ArchiveSummary:
    collected: int = 0
    downloaded: int = 0
    skipped: int = 0


def destination_path(dest_dir: Path, ref: MediaReference) -> Path:
    return Path(dest_dir) / ref.filename


def _raise_if_cancelled(cancel: threading.Event | None, context: str) -> None:
    if cancel is not None and cancel.is_set():
        raise ArchiveCancelled(f"{context}: cancelled")


def _pause(seconds: float, cancel: threading.Event | None) -> None:
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise ArchiveCancelled("pacing delay: cancelled")


class ResumeGate:
    """Stops the feed walk at the first reference already archived locally."""

    def __init__(self, dest_dir: Path) -> None:
        self.dest_dir = Path(dest_dir)

    def should_stop(self, ref: MediaReference) -> bool:
        return destination_path(self.dest_dir, ref).exists()


def collect_pending(
    source: MediaSource,
    gate: ResumeGate,
    *,
    cancel: threading.Event | None = None,
) -> List[MediaReference]:
    """Walk the feed newest-first until it runs out or reaches archived media.

    The returned batch keeps feed order (newest first). Walking stops at the
    first reference the gate reports as present: the feed is reverse
    chronological and archival only ever appends, so everything after that
    point was stored by an earlier run.
    """
    batch: List[MediaReference] = []
    cursor: str | None = None
    pages = 0
    stop = False
    while not stop:
        _raise_if_cancelled(cancel, "fetch media page")
        try:
            page = source.fetch_page(cursor)
        except ArchiveError:
            raise
        except Exception as exc:  # noqa: BLE001 - wrap foreign source errors
            raise FeedFetchError(f"fetch media page: {exc}") from exc
        pages += 1
        stop = not page.has_more

        for raw in page.references:
            if isinstance(raw, UnresolvedMedia):
                raise raw.error
            ref = MediaReference.parse(raw)
            if gate.should_stop(ref):
                logger.debug("Reached archived media %s on page %d", ref.filename, pages)
                stop = True
                break
            batch.append(ref)

        cursor = page.next_cursor

    logger.info("Collected %d new media reference(s) across %d page(s)", len(batch), pages)
    return batch


def replay_chronologically(
    batch: Iterable[MediaReference],
    materialize: Callable[[MediaReference], Any],
    *,
    delay: float = PACING_DELAY_SECONDS,
    cancel: threading.Event | None = None,
) -> int:
    """Materialize a newest-first batch oldest-first, pausing between items."""
    processed = 0
    for ref in reversed(list(batch)):
        if processed:
            _pause(delay, cancel)
        _raise_if_cancelled(cancel, f"process {ref.url}")
        materialize(ref)
        processed += 1
    return processed


class MediaDownloader:
    """Streams media references into the destination directory."""

    def __init__(
        self,
        session: requests.Session,
        dest_dir: Path,
        *,
        overwrite: bool = False,
        log: ArchiveLog | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.session = session
        self.dest_dir = Path(dest_dir)
        self.overwrite = overwrite
        self.log = log or ChannelLog()
        self.cancel = cancel
        self.downloaded = 0
        self.skipped = 0

    def __call__(self, ref: MediaReference) -> Path:
        return self.materialize(ref)

    def materialize(self, ref: MediaReference) -> Path:
        dest = destination_path(self.dest_dir, ref)
        if dest.exists() and not self.overwrite:
            self.log.notice("file %s already exists. skipping.", dest)
            self.skipped += 1
            return dest

        _raise_if_cancelled(self.cancel, f"download {ref.url}")
        partial = dest.with_name(dest.name + PARTIAL_SUFFIX)
        try:
            with closing(self.session.get(ref.url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS)) as response:
                response.raise_for_status()
                self._stream_to(response, partial, ref)
            os.replace(partial, dest)
        except requests.exceptions.RequestException as exc:
            _discard(partial)
            raise RetrievalError(f"download {ref.url}: {exc}") from exc
        except OSError as exc:
            _discard(partial)
            raise StorageError(f"write {dest}: {exc}") from exc
        except ArchiveError:
            _discard(partial)
            raise

        self.downloaded += 1
        self.log.narrate("%s downloaded.", ref.url)
        return dest

    def _stream_to(self, response: requests.Response, path: Path, ref: MediaReference) -> None:
        try:
            fh = path.open("wb")
        except OSError as exc:
            raise StorageError(f"create file {path}: {exc}") from exc
        with fh:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                _raise_if_cancelled(self.cancel, f"download {ref.url}")
                if chunk:
                    fh.write(chunk)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove partial download %s: %s", path, exc)


def archive_media(
    source: MediaSource,
    *,
    session: requests.Session,
    options: ArchiveOptions,
    log: ArchiveLog | None = None,
    cancel: threading.Event | None = None,
) -> ArchiveSummary:
    """Run one incremental archival pass of ``source`` into ``options.dest_dir``."""
    log = log or ChannelLog()
    gate = ResumeGate(options.dest_dir)
    downloader = MediaDownloader(
        session,
        options.dest_dir,
        overwrite=options.overwrite,
        log=log,
        cancel=cancel,
    )

    batch = collect_pending(source, gate, cancel=cancel)
    summary = ArchiveSummary(collected=len(batch))
    replay_chronologically(batch, downloader, delay=options.delay, cancel=cancel)
    summary.downloaded = downloader.downloaded
    summary.skipped = downloader.skipped

    logger.info(
        "Completed archive of %s: collected=%d downloaded=%d skipped=%d",
        options.dest_dir,
        summary.collected,
        summary.downloaded,
        summary.skipped,
    )
    return summary


__all__ = [
    "PACING_DELAY_SECONDS",
    "ArchiveCancelled",
    "ArchiveError",
    "ArchiveLog",
    "ArchiveOptions",
    "ArchiveSummary",
    "ChannelLog",
    "EmptyVariantSet",
    "FeedFetchError",
    "MediaDownloader",
    "MediaReference",
    "MediaSource",
    "Page",
    "ReferenceParseError",
    "ResumeGate",
    "RetrievalError",
    "StorageError",
    "UnresolvedMedia",
    "archive_media",
    "collect_pending",
    "destination_path",
    "replay_chronologically",
]

"""Public package surface for mediarchive."""
from .config import AppConfig, ConfigError, TwitterCredentials, load_config
from .core import (
    PACING_DELAY_SECONDS,
    ArchiveCancelled,
    ArchiveError,
    ArchiveLog,
    ArchiveOptions,
    ArchiveSummary,
    ChannelLog,
    EmptyVariantSet,
    FeedFetchError,
    MediaDownloader,
    MediaReference,
    MediaSource,
    Page,
    ReferenceParseError,
    ResumeGate,
    RetrievalError,
    StorageError,
    UnresolvedMedia,
    archive_media,
    collect_pending,
    destination_path,
    replay_chronologically,
)
from .twitter import TimelineMediaSource, build_session, find_user_id

__version__ = "0.1.0"

__all__ = [
    "PACING_DELAY_SECONDS",
    "AppConfig",
    "ArchiveCancelled",
    "ArchiveError",
    "ArchiveLog",
    "ArchiveOptions",
    "ArchiveSummary",
    "ChannelLog",
    "ConfigError",
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
    "TimelineMediaSource",
    "TwitterCredentials",
    "UnresolvedMedia",
    "archive_media",
    "build_session",
    "collect_pending",
    "destination_path",
    "find_user_id",
    "load_config",
    "replay_chronologically",
    "__version__",
]

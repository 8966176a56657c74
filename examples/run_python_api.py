from __future__ import annotations

from pathlib import Path

from mediarchive import ArchiveOptions, TimelineMediaSource, archive_media, build_session, find_user_id, load_config


def main() -> None:
    """Demonstrate the Python API by archiving one account into ./example_runs."""
    config = load_config(Path("settings.yml"))
    session = build_session(config.twitter, user_agent="mediarchive-example/0.1")

    user_id = find_user_id(session, "TwitterDev")
    source = TimelineMediaSource(session, user_id, page_size=50)

    options = ArchiveOptions(dest_dir=Path("./example_runs"), overwrite=False)
    options.dest_dir.mkdir(parents=True, exist_ok=True)

    summary = archive_media(source, session=session, options=options)
    print(f"collected={summary.collected} downloaded={summary.downloaded} skipped={summary.skipped}")


if __name__ == "__main__":
    main()

"""Fetching a full /sync response, cached on disk."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from urllib.parse import quote_plus

import requests

_logger = logging.getLogger(__name__)

_SYNC_FILTER = '{"event_format":"federation", "room":{"timeline":{"limit":50}}}'
_MAX_ATTEMPTS = 20


class SyncError(Exception):
    """Raised when sync data cannot be loaded."""


def load_sync_data(hs_url: str, token: str, temp_file: str | Path) -> bytes:
    """Return /sync data, read from `temp_file` if present, else fetched and saved there."""
    path = Path(temp_file)
    cached = _load_from_disk(path)
    if cached is not None:
        _logger.info("Loaded sync data from %s", path)
        return cached

    url = f"{hs_url}/_matrix/client/r0/sync?filter={quote_plus(_SYNC_FILTER)}"
    body: bytes | None = None
    with requests.Session() as session:
        for _ in range(_MAX_ATTEMPTS):
            _logger.info("Performing /sync...")
            try:
                body = _do_request(session, url, token)
            except (SyncError, requests.RequestException) as exc:
                _logger.warning("failed to perform sync request: %s", exc)
                continue
            break
    if body is None:
        raise SyncError("failed to perform /sync")

    try:
        path.write_bytes(body)
    except OSError as exc:
        _logger.warning("failed to write sync data to disk: %s", exc)
    return body


def _load_from_disk(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise SyncError(f"failed to read data from disk: {exc}") from exc


def _do_request(session: requests.Session, url: str, token: str) -> bytes:
    headers = {"Authorization": f"Bearer {token}"}
    with session.get(url, headers=headers, stream=True) as res:
        if res.status_code != 200:
            raise SyncError(f"response returned {res.status_code} {res.reason}")
        try:
            content_length = int(res.headers.get("Content-Length", ""))
        except ValueError:
            content_length = 0
        chunks = []
        total = 0
        for chunk in res.iter_content(chunk_size=32 * 1024):
            chunks.append(chunk)
            total += len(chunk)
            _report_progress(total, content_length)
        return b"".join(chunks)


def _report_progress(total: int, content_length: int) -> None:
    sys.stderr.write("\r" + " " * 80)
    sys.stderr.write(
        f"\rDownloading... {total // 1024} / {content_length // 1024} KB complete"
    )
    sys.stderr.flush()
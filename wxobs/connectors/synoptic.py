"""Download hourly observations from the SynopticLabs time-series API."""

from __future__ import annotations

from urllib.parse import urlencode

import requests

from wxobs.config import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT, SYNOPTIC_BASE_URL, SYNOPTIC_VARS
from wxobs.connectors.csv_stream import CsvFieldStream
from wxobs.core.ingest import IngestSummary, ingestion
from wxobs.core.time_range import TimeRange
from wxobs.errors import StreamParseError, TransportError
from wxobs.storage.db import ObsDatabase

_USER_AGENT = "wxobs/0.1"


def _log(verbose: bool, msg: str) -> None:
    if verbose:
        import typer

        typer.echo(msg, err=True)


def build_url(
    api_key: str,
    site_id: str,
    time_range: TimeRange,
    base_url: str = SYNOPTIC_BASE_URL,
) -> str:
    params: list[tuple[str, str | int]] = [
        ("stid", site_id),
        ("vars", ",".join(SYNOPTIC_VARS)),
        ("units", "english"),
        ("output", "csv"),
        ("start", time_range.start.strftime("%Y%m%d%H%M")),
        ("end", time_range.end.strftime("%Y%m%d%H%M")),
        ("hfmetars", 0),
        ("token", api_key),
    ]
    return base_url + "?" + urlencode(params, safe=",")


def new_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = _USER_AGENT
    return session


def download(
    db: ObsDatabase,
    session: requests.Session,
    api_key: str,
    site_id: str,
    time_range: TimeRange,
    base_url: str = SYNOPTIC_BASE_URL,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    verbose: bool = False,
) -> IngestSummary:
    """Fetch *time_range* for *site_id* and ingest it into *db* in one transaction.

    Any HTTP, stream or store failure rolls the transaction back, leaving
    the store exactly as it was, and is raised to the caller.

    Returns
    -------
    IngestSummary with the inserted / rejected / comment row counts.
    """
    site_id = site_id.lower()
    url = build_url(api_key, site_id, time_range, base_url)
    _log(verbose, f"  [download] site={site_id} {time_range}")

    try:
        with ingestion(db, site_id) as pipeline:
            stream = CsvFieldStream(pipeline)
            try:
                resp = session.get(url, stream=True, timeout=timeout)
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if not chunk:
                        continue
                    if stream.feed(chunk) != len(chunk):
                        raise StreamParseError(f"error parsing csv stream: {stream.error}")
            except requests.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                raise TransportError(
                    f"download failed for {site_id}: HTTP {status}", status_code=status
                ) from exc
            except requests.RequestException as exc:
                raise TransportError(f"download failed for {site_id}: {exc}") from exc
            if not stream.close():
                raise StreamParseError(f"error parsing csv stream: {stream.error}")
    except TransportError as exc:
        _log(verbose, f"  [download rolled back] site={site_id}: {exc}")
        raise

    summary = pipeline.summary
    _log(
        verbose,
        f"  [download done] site={site_id} inserted={summary.rows_inserted} "
        f"rejected={summary.rows_rejected} comments={summary.comment_rows}",
    )
    return summary

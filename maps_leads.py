#!/usr/bin/env python3
"""
Google Maps Leads Finder

Sends a search query and location to the leads webhook and saves the CSV it
returns. Free usage is limited to a few runs, counted locally.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

import requests
from dotenv import load_dotenv

from form_handler import AppState, FormController, PageLoaded, ResultsEntered, SubmitForm, ViewState
from leadform import JsonFileStorage, QuotaTracker, get_logger, setup_logging
from leadform.quota import DEFAULT_MAX_RUNS
from webhook_client import MAX_RESULTS, WEBHOOK_URL, CsvPayload, DownloadUrlPayload, ResultPayload, submit_lead_request

DEFAULT_STORAGE_PATH = os.path.join("~", ".maps_leads", "storage.json")
DEFAULT_RESULTS = 20
DOWNLOAD_CHUNK_SIZE = 64 * 1024


logger = get_logger(__name__)


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value in (None, ""):
        return None
    return float(value)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Request up to {MAX_RESULTS} Google Maps leads as a CSV file.",
    )
    parser.add_argument("--query", default=os.getenv("MAPS_LEADS_QUERY", ""), help="Business type to search for (env: MAPS_LEADS_QUERY)")
    parser.add_argument("--location", default=os.getenv("MAPS_LEADS_LOCATION", ""), help="City or area (env: MAPS_LEADS_LOCATION)")
    parser.add_argument("--results", default=os.getenv("MAPS_LEADS_RESULTS", str(DEFAULT_RESULTS)), help=f"Number of results, max {MAX_RESULTS} (env: MAPS_LEADS_RESULTS)")
    parser.add_argument("--webhook-url", default=os.getenv("MAPS_LEADS_WEBHOOK_URL", WEBHOOK_URL), help="Webhook endpoint (env: MAPS_LEADS_WEBHOOK_URL)")
    parser.add_argument("--output-dir", default=os.getenv("MAPS_LEADS_OUTPUT_DIR", "."), help="Where to save the CSV (env: MAPS_LEADS_OUTPUT_DIR)")
    parser.add_argument("--storage-path", default=os.getenv("MAPS_LEADS_STORAGE", DEFAULT_STORAGE_PATH), help="Local usage storage file (env: MAPS_LEADS_STORAGE)")
    parser.add_argument("--timeout", type=_optional_float, default=os.getenv("MAPS_LEADS_TIMEOUT"), help="Request timeout in seconds, unset waits indefinitely (env: MAPS_LEADS_TIMEOUT)")
    parser.add_argument("--status", action="store_true", help="Show remaining free runs and exit")
    parser.add_argument("--reset-quota", action="store_true", help="Restore all free runs and exit")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"), help="Logging level (env: LOG_LEVEL)")
    return parser.parse_args(argv)


def render_download(
    payload: ResultPayload,
    output_dir: str,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> Path:
    """Write the CSV to ``output_dir`` and return its path."""

    target_dir = Path(output_dir).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / Path(payload.filename).name

    if isinstance(payload, CsvPayload):
        with target.open("w", newline="", encoding="utf-8") as f:
            f.write(payload.csv_text)
        return target

    if isinstance(payload, DownloadUrlPayload):
        http = session or requests
        with http.get(payload.url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with target.open("wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        return target

    raise TypeError(f"Unsupported payload: {payload!r}")


def print_usage(view: ViewState) -> None:
    if view.limit_reached:
        print("Free search limit reached. You have used all of your free searches.")
        return
    runs = "run" if view.remaining_runs == 1 else "runs"
    suffix = " (last one!)" if view.last_run else ""
    print(f"Free searches remaining: {view.remaining_runs} {runs}{suffix}")


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.log_level.upper())

    storage = JsonFileStorage(args.storage_path)
    quota = QuotaTracker(storage, max_runs=DEFAULT_MAX_RUNS)

    if args.reset_quota:
        quota.reset()
        logger.info("Quota reset to %d runs", quota.remaining)
        print(f"Free searches restored: {quota.remaining}")
        return 0

    session = requests.Session()

    def send(lead):
        return submit_lead_request(lead, url=args.webhook_url, session=session, timeout=args.timeout)

    controller = FormController(AppState(quota=quota), send)
    view = controller.dispatch(PageLoaded()).view

    if args.status or view.limit_reached:
        print_usage(view)
        return 1 if view.limit_reached else 0

    controller.dispatch(ResultsEntered(args.results))
    if controller.results_warning_visible():
        print(f"Maximum {MAX_RESULTS} results allowed, using {MAX_RESULTS}.")

    print(f"Searching '{args.query}' in '{args.location}'...")
    view = controller.dispatch(SubmitForm(args.query, args.location, args.results)).view

    if view.error_message:
        print(view.error_message)
        print_usage(view)
        return 1

    if view.download is None:
        logger.error("Submission finished without a download")
        return 1

    try:
        path = render_download(view.download, args.output_dir, session=session, timeout=args.timeout)
    except (OSError, requests.exceptions.RequestException) as exc:
        logger.error("Could not save %s: %s", view.download.filename, exc)
        print(f"Error: could not download {view.download.filename}. Please try again.")
        return 1

    print(f"Your leads are ready: {path}")
    print_usage(view)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Google Maps Leads Webhook Client

Builds lead requests, posts them to the n8n webhook and turns the reply into
something downloadable: either CSV text or a URL to fetch the CSV from.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

import requests
from requests import Response

from leadform import get_logger


WEBHOOK_URL = "https://n8n.lukasbekr.com/webhook/google-maps-leads"
MAX_RESULTS = 50
FILENAME_PREFIX = "google-maps-leads"

_DISPOSITION_FILENAME = re.compile(r'filename="(.+)"')

logger = get_logger(__name__)


class LeadFormError(Exception):
    """Base class for anything that ends a submission early."""


class ValidationError(LeadFormError):
    """Missing or invalid form fields. Raised before any run is spent."""


class TransportError(LeadFormError):
    """Non-2xx status or the request never completed."""


class FormatError(LeadFormError):
    """The webhook answered with something we cannot turn into a CSV."""


@dataclass(frozen=True)
class LeadRequest:
    search_query: str
    location: str
    number_of_results: int

    def to_json(self) -> Dict[str, Any]:
        return {
            "searchQuery": self.search_query,
            "location": self.location,
            "numberOfResults": self.number_of_results,
        }


@dataclass(frozen=True)
class CsvPayload:
    csv_text: str
    filename: str


@dataclass(frozen=True)
class DownloadUrlPayload:
    url: str
    filename: str


ResultPayload = Union[CsvPayload, DownloadUrlPayload]


def clamp_results(value: int, max_results: int = MAX_RESULTS) -> int:
    return min(value, max_results)


def parse_results(raw: Any) -> Optional[int]:
    """Parse a results count the way a number input would; None when blank or not a number."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def build_lead_request(search_query: Any, location: Any, number_of_results: Any, max_results: int = MAX_RESULTS) -> LeadRequest:
    """Validate raw form fields and return a fresh request.

    Raises ValidationError for empty fields. A count above ``max_results`` is
    clamped rather than rejected.
    """

    query = (search_query or "").strip()
    place = (location or "").strip()
    count = parse_results(number_of_results)

    # A zero, negative or unparseable count reads as an empty field.
    if not query or not place or count is None or count <= 0:
        raise ValidationError("Please fill in all required fields")

    return LeadRequest(query, place, clamp_results(count, max_results))


def default_filename(prefix: str = FILENAME_PREFIX, today: Optional[date] = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    return f"{prefix}-{day.isoformat()}.csv"


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _DISPOSITION_FILENAME.search(header)
    return match.group(1) if match else None


def resolve_filename(resp: Response, prefix: str = FILENAME_PREFIX, today: Optional[date] = None) -> str:
    return filename_from_disposition(resp.headers.get("content-disposition")) or default_filename(prefix, today)


def _csv_text(resp: Response) -> str:
    # requests assumes ISO-8859-1 for text/* without a charset; the webhook sends UTF-8.
    if "charset=" in resp.headers.get("content-type", "").lower():
        return resp.text
    return resp.content.decode("utf-8", errors="replace")


def post_lead_request(
    lead: LeadRequest,
    url: str = WEBHOOK_URL,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> Response:
    """POST the lead request as JSON and return the 2xx response.

    Raises TransportError on network failure or a non-2xx status.
    """

    http = session or requests
    logger.info(
        "Posting lead request to %s (query=%s, location=%s, results=%d)",
        url,
        lead.search_query,
        lead.location,
        lead.number_of_results,
    )
    try:
        response = http.post(
            url,
            json=lead.to_json(),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except requests.exceptions.RequestException as exc:
        raise TransportError(str(exc) or exc.__class__.__name__) from exc

    if not response.ok:
        raise TransportError(f"HTTP error! status: {response.status_code}")
    return response


def interpret_response(resp: Response, prefix: str = FILENAME_PREFIX, today: Optional[date] = None) -> ResultPayload:
    """Turn a successful webhook response into a CSV or a download URL.

    ``text/csv`` bodies are used as-is. Anything else must be JSON carrying
    either ``{"success": true, "csvData": ...}`` or ``{"downloadUrl": ...}``.
    """

    filename = resolve_filename(resp, prefix, today)
    content_type = resp.headers.get("content-type", "")

    if "text/csv" in content_type.lower():
        logger.info("Received CSV response (%d bytes)", len(resp.content))
        return CsvPayload(csv_text=_csv_text(resp), filename=filename)

    try:
        result = resp.json()
    except ValueError as exc:
        raise FormatError("Unable to process response data") from exc

    if not isinstance(result, dict):
        raise FormatError("Unexpected response format")

    if result.get("success") and result.get("csvData"):
        logger.info("Received inline CSV in JSON response")
        return CsvPayload(csv_text=str(result["csvData"]), filename=filename)
    if result.get("downloadUrl"):
        logger.info("Received download URL %s", result["downloadUrl"])
        return DownloadUrlPayload(url=str(result["downloadUrl"]), filename=filename)

    raise FormatError("Unexpected response format")


def submit_lead_request(
    lead: LeadRequest,
    url: str = WEBHOOK_URL,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> ResultPayload:
    return interpret_response(post_lead_request(lead, url=url, session=session, timeout=timeout))

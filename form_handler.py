"""
Lead form state machine.

Idle -> Validating -> Submitting -> {Success, Error} -> Idle

The controller owns no globals: every handler reads and writes the AppState it
was given, and the network call comes in as a plain callable so the whole
lifecycle runs without a UI or a socket.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from leadform import QuotaLimitError, QuotaTracker, get_logger
from webhook_client import (
    MAX_RESULTS,
    LeadFormError,
    LeadRequest,
    ResultPayload,
    TransportError,
    ValidationError,
    build_lead_request,
    parse_results,
)

RESULTS_WARNING_SECONDS = 3.0
LIMIT_REACHED_MESSAGE = "You have reached the maximum number of free searches"
PROCESSING_MESSAGE = "Processing your request..."

logger = get_logger(__name__)

Sender = Callable[[LeadRequest], ResultPayload]


class FormState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class PageLoaded:
    pass


@dataclass(frozen=True)
class ResultsEntered:
    value: Any


@dataclass(frozen=True)
class SubmitForm:
    search_query: Any
    location: Any
    number_of_results: Any


@dataclass
class ViewState:
    """What the page shows right now."""

    form_visible: bool = True
    form_enabled: bool = True
    loading: bool = False
    status_message: Optional[str] = None
    success_visible: bool = False
    download: Optional[ResultPayload] = None
    cta_visible: bool = False
    error_message: Optional[str] = None
    results_value: Optional[int] = None
    results_warning_until: Optional[float] = None
    usage_counter_visible: bool = True
    remaining_runs: int = 0
    last_run: bool = False
    limit_reached: bool = False

    def hide_all(self) -> None:
        self.success_visible = False
        self.download = None
        self.cta_visible = False
        self.error_message = None
        self.status_message = None

    def results_warning_visible(self, now: float) -> bool:
        return self.results_warning_until is not None and now < self.results_warning_until


@dataclass
class AppState:
    quota: QuotaTracker
    view: ViewState = field(default_factory=ViewState)
    state: FormState = FormState.IDLE
    transitions: List[FormState] = field(default_factory=list)
    last_error: Optional[LeadFormError] = None


class FormController:
    """Dispatches form events onto an AppState."""

    def __init__(
        self,
        app: AppState,
        send: Sender,
        max_results: int = MAX_RESULTS,
        clock: Callable[[], float] = time.monotonic,
        warning_seconds: float = RESULTS_WARNING_SECONDS,
    ):
        self.app = app
        self.send = send
        self.max_results = max_results
        self.clock = clock
        self.warning_seconds = warning_seconds
        self._handlers = {
            PageLoaded: self._on_page_loaded,
            ResultsEntered: self._on_results_entered,
            SubmitForm: self._on_submit,
        }

    def dispatch(self, event: Any) -> AppState:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event: {event!r}")
        handler(event)
        return self.app

    def results_warning_visible(self) -> bool:
        return self.app.view.results_warning_visible(self.clock())

    def _transition(self, new_state: FormState) -> None:
        logger.debug("Form state %s -> %s", self.app.state.value, new_state.value)
        self.app.state = new_state
        self.app.transitions.append(new_state)

    def _refresh_usage(self) -> None:
        quota = self.app.quota
        view = self.app.view
        view.remaining_runs = quota.remaining
        view.last_run = quota.is_last_run()
        exhausted = quota.is_exhausted()
        view.form_visible = not exhausted
        view.usage_counter_visible = not exhausted
        view.limit_reached = exhausted

    def _show_error(self, error: LeadFormError) -> None:
        view = self.app.view
        view.hide_all()
        view.error_message = f"Error: {error}. Please try again."
        self.app.last_error = error

    def _apply_results_input(self, raw: Any) -> Optional[int]:
        view = self.app.view
        value = parse_results(raw)
        if value is not None and value > self.max_results:
            value = self.max_results
            view.results_warning_until = self.clock() + self.warning_seconds
            logger.info("Results clamped to %d", self.max_results)
        else:
            view.results_warning_until = None
        view.results_value = value
        return value

    def _on_page_loaded(self, event: PageLoaded) -> None:
        self.app.quota.load()
        self._refresh_usage()

    def _on_results_entered(self, event: ResultsEntered) -> None:
        self._apply_results_input(event.value)

    def _on_submit(self, event: SubmitForm) -> None:
        if self.app.state is FormState.SUBMITTING or not self.app.view.form_enabled:
            logger.warning("Ignoring submit while a request is in flight")
            return

        quota = self.app.quota
        view = self.app.view

        try:
            quota.ensure_available()
        except QuotaLimitError:
            self._show_error(ValidationError(LIMIT_REACHED_MESSAGE))
            self._refresh_usage()
            return

        self._transition(FormState.VALIDATING)
        count = self._apply_results_input(event.number_of_results)
        try:
            lead = build_lead_request(event.search_query, event.location, count, self.max_results)
        except ValidationError as exc:
            self._show_error(exc)
            self._transition(FormState.ERROR)
            self._transition(FormState.IDLE)
            return

        self._transition(FormState.SUBMITTING)
        view.hide_all()
        view.form_enabled = False
        view.loading = True
        view.status_message = PROCESSING_MESSAGE
        quota.consume()
        self._refresh_usage()

        try:
            payload = self.send(lead)
        except LeadFormError as exc:
            logger.warning("Submission failed: %s (refunding run)", exc)
            quota.restore()
            self._show_error(exc)
            self._transition(FormState.ERROR)
        except Exception as exc:
            logger.exception("Unexpected failure while submitting (refunding run)")
            quota.restore()
            self._show_error(TransportError(str(exc) or "Failed to process request"))
            self._transition(FormState.ERROR)
        else:
            view.hide_all()
            view.success_visible = True
            view.download = payload
            view.cta_visible = True
            self.app.last_error = None
            logger.info("Leads ready as %s", payload.filename)
            self._transition(FormState.SUCCESS)
        finally:
            view.loading = False
            view.form_enabled = True
            self._refresh_usage()
            self._transition(FormState.IDLE)

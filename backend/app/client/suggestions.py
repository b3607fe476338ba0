"""
Client-side lifecycle for rule suggestions.

Suggestions are fetched from the backend, filtered against permanently
dismissed patterns, and then accepted (creating a rule), dismissed for the
session, or dismissed permanently.
"""

import asyncio
import enum
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set, Tuple

import httpx

from app.client.dismissals import (
    DismissalStore,
    JsonFileStore,
    KeyValueDismissalStore,
    normalize_pattern,
)
from app.config import settings
from app.schemas.correction import (
    AnalysisResult,
    CorrectionCreate,
    PatternSuggestion,
    SuggestionAccept,
)
from app.schemas.rule import AcceptedRuleResponse

logger = logging.getLogger(__name__)

CORRECTIONS_PATH = "/api/v1/categories/corrections"


class SuggestionState(str, enum.Enum):
    """Lifecycle state of a fetched suggestion."""
    fetched = "fetched"
    accepted = "accepted"
    dismissed_for_session = "dismissed_for_session"
    dismissed_permanently = "dismissed_permanently"


class AcceptInProgressError(RuntimeError):
    """Raised when a suggestion is accepted again before the first request finished."""


class SuggestionBackend(ABC):
    """Where suggestions come from and where accepted ones go."""

    @abstractmethod
    async def fetch_suggestions(self) -> AnalysisResult:
        pass

    @abstractmethod
    async def accept_suggestion(self, suggestion: PatternSuggestion) -> AcceptedRuleResponse:
        pass

    @abstractmethod
    async def record_correction(self, correction: CorrectionCreate) -> Optional[str]:
        pass


class ApiSuggestionBackend(SuggestionBackend):
    """Suggestion backend talking to the corrections API over HTTP."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None
    ):
        self.client = client
        self.max_attempts = max_attempts or settings.correction_record_attempts
        self.retry_delay = settings.correction_record_retry_delay if retry_delay is None else retry_delay

    async def fetch_suggestions(self) -> AnalysisResult:
        response = await self.client.get(CORRECTIONS_PATH, params={"action": "suggestions"})
        response.raise_for_status()
        return AnalysisResult.model_validate(response.json())

    async def accept_suggestion(self, suggestion: PatternSuggestion) -> AcceptedRuleResponse:
        payload = SuggestionAccept.from_suggestion(suggestion)
        response = await self.client.post(
            f"{CORRECTIONS_PATH}/accept",
            json=payload.model_dump(mode="json")
        )
        response.raise_for_status()
        return AcceptedRuleResponse.model_validate(response.json())

    async def record_correction(self, correction: CorrectionCreate) -> Optional[str]:
        """
        Record a correction with at-least-once delivery.

        The correction gets a client-generated id before the first attempt,
        so a retry after a lost response cannot create a duplicate row.
        Returns the id, or None once all attempts have failed.
        """
        if not correction.id:
            correction = correction.model_copy(update={"id": str(uuid.uuid4())})
        payload = correction.model_dump(mode="json")

        delay = self.retry_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.post(CORRECTIONS_PATH, json=payload)
            except httpx.TransportError as e:
                logger.warning(f"Recording correction failed (attempt {attempt}/{self.max_attempts}): {e}")
            else:
                if response.status_code < 400:
                    return response.json()["id"]
                if response.status_code < 500:
                    logger.error(f"Correction rejected with {response.status_code}: {response.text}")
                    return None
                logger.warning(
                    f"Recording correction failed with {response.status_code} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )

            if attempt < self.max_attempts:
                await asyncio.sleep(delay)
                delay *= 2

        logger.error(f"Giving up on correction {correction.id} after {self.max_attempts} attempts")
        return None


class SuggestionLifecycleManager:
    """
    Tracks fetched suggestions and what the user did with them.

    Suggestions are keyed by (pattern, category_id). Fetches are numbered;
    a response that resolves after a newer one has been applied is dropped.
    """

    def __init__(self, backend: SuggestionBackend, dismissals: DismissalStore):
        self.backend = backend
        self.dismissals = dismissals
        self.suggestions: List[PatternSuggestion] = []
        self.is_loading = False
        self._states: Dict[Tuple[str, str], SuggestionState] = {}
        self._accepting: Set[Tuple[str, str]] = set()
        self._request_seq = 0
        self._applied_seq = 0
        self._in_flight = 0
        self._background: Set[asyncio.Task] = set()
        # Key -> newest fetch number issued when its accept finished
        self._accepted_at: Dict[Tuple[str, str], int] = {}

    def state_of(self, suggestion: PatternSuggestion) -> Optional[SuggestionState]:
        return self._states.get(suggestion.key)

    async def mount(self) -> List[PatternSuggestion]:
        """Initial fetch when the suggestion view appears."""
        return await self.fetch_suggestions()

    async def fetch_suggestions(self) -> List[PatternSuggestion]:
        self._request_seq += 1
        seq = self._request_seq
        self._in_flight += 1
        self.is_loading = True

        try:
            result = await self.backend.fetch_suggestions()
        except Exception as e:
            logger.error(f"Failed to fetch rule suggestions: {e}")
            return self.suggestions
        finally:
            self._in_flight -= 1
            self.is_loading = self._in_flight > 0

        if seq < self._applied_seq:
            logger.debug(f"Discarding stale suggestions response #{seq}")
            return self.suggestions

        self._applied_seq = seq
        self.suggestions = [
            s for s in result.suggestions
            if not self.dismissals.is_dismissed(s.pattern)
            and not self._accepted_after(s, seq)
        ]
        for s in self.suggestions:
            self._states[s.key] = SuggestionState.fetched
        return self.suggestions

    async def accept(self, suggestion: PatternSuggestion) -> AcceptedRuleResponse:
        """
        Create a rule from the suggestion.

        Errors propagate and leave the suggestion in the list so the user
        can retry.
        """
        key = suggestion.key
        if key in self._accepting:
            raise AcceptInProgressError(f"Rule for '{suggestion.pattern}' is already being created")

        self._accepting.add(key)
        try:
            response = await self.backend.accept_suggestion(suggestion)
        finally:
            self._accepting.discard(key)

        self._remove(lambda s: s.key == key)
        self._states[key] = SuggestionState.accepted
        self._accepted_at[key] = self._request_seq
        if response.provenance_pending:
            logger.warning(f"Rule {response.rule.id} created but its corrections are not linked yet")
        return response

    def dismiss_for_session(self, suggestion: PatternSuggestion) -> None:
        """Hide the suggestion until the next fetch."""
        self._remove(lambda s: s.key == suggestion.key)
        self._states[suggestion.key] = SuggestionState.dismissed_for_session

    def dismiss_permanently(self, suggestion: PatternSuggestion) -> None:
        """Hide the pattern now and filter it from every future fetch."""
        pattern = normalize_pattern(suggestion.pattern)
        self.dismissals.dismiss(suggestion.pattern)
        self._remove(lambda s: normalize_pattern(s.pattern) == pattern)
        self._states[suggestion.key] = SuggestionState.dismissed_permanently

    def record_correction(self, correction: CorrectionCreate) -> asyncio.Task:
        """
        Record a correction in the background and refresh suggestions if it
        was stored. Returns the task; callers do not need to await it.
        """
        task = asyncio.get_running_loop().create_task(self._record_and_refresh(correction))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _record_and_refresh(self, correction: CorrectionCreate) -> Optional[str]:
        try:
            correction_id = await self.backend.record_correction(correction)
        except Exception as e:
            logger.error(f"Failed to record correction for '{correction.description}': {e}")
            return None

        if correction_id:
            await self.fetch_suggestions()
        return correction_id

    def _accepted_after(self, suggestion: PatternSuggestion, seq: int) -> bool:
        """Whether the suggestion was accepted after fetch `seq` had started."""
        accepted_at = self._accepted_at.get(suggestion.key)
        return accepted_at is not None and seq <= accepted_at

    def _remove(self, predicate) -> None:
        self.suggestions = [s for s in self.suggestions if not predicate(s)]


def create_lifecycle_manager(
    base_url: Optional[str] = None,
    dismissed_patterns_path: Optional[str] = None,
    timeout: float = 10.0
) -> Tuple[SuggestionLifecycleManager, httpx.AsyncClient]:
    """
    Build a manager wired to the HTTP API and a file-backed dismissal store.
    The caller owns the returned client and should close it.
    """
    client = httpx.AsyncClient(base_url=base_url or settings.api_base_url, timeout=timeout)
    store = KeyValueDismissalStore(JsonFileStore(dismissed_patterns_path or settings.dismissed_patterns_path))
    return SuggestionLifecycleManager(ApiSuggestionBackend(client), store), client

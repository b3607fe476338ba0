"""Tests for the client-side suggestion lifecycle."""

import asyncio
import json
from datetime import datetime

import httpx
import pytest

from app.client.dismissals import JsonFileStore, KeyValueDismissalStore
from app.client.suggestions import (
    AcceptInProgressError,
    ApiSuggestionBackend,
    SuggestionBackend,
    SuggestionLifecycleManager,
    SuggestionState,
)
from app.database import get_db
from app.main import app
from app.models.category_rule import MatchType
from app.schemas.correction import AnalysisResult, CorrectionCreate, PatternSuggestion
from app.schemas.rule import AcceptedRuleResponse, RuleResponse

pytestmark = pytest.mark.anyio


def make_suggestion(pattern="AMZN MKTP UK", category_id="cat-groceries", match_type=MatchType.exact):
    return PatternSuggestion(
        pattern=pattern,
        match_type=match_type,
        category_id=category_id,
        category_name="Groceries",
        correction_count=3,
        sample_descriptions=[pattern] * 3,
        confidence=0.85,
        correction_ids=["c-1", "c-2", "c-3"],
    )


def accepted_response(suggestion, provenance_pending=False):
    return AcceptedRuleResponse(
        rule=RuleResponse(
            id="rule-1",
            pattern=suggestion.pattern,
            category_id=suggestion.category_id,
            match_type=suggestion.match_type,
            confidence=suggestion.confidence,
            is_system=False,
            provenance_pending=provenance_pending,
            created_at=datetime(2026, 1, 1),
        ),
        provenance_pending=provenance_pending,
    )


class FakeBackend(SuggestionBackend):
    """In-memory backend; queued fetch results can be held back with an Event."""

    def __init__(self):
        self.fetch_results = []
        self.fetch_calls = 0
        self.accepted = []
        self.accept_error = None
        self.accept_gate = None
        self.recorded = []

    def queue(self, suggestions, gate=None):
        self.fetch_results.append((AnalysisResult(suggestions=suggestions), gate))

    async def fetch_suggestions(self):
        self.fetch_calls += 1
        result, gate = self.fetch_results.pop(0)
        if gate is not None:
            await gate.wait()
        return result

    async def accept_suggestion(self, suggestion):
        if self.accept_gate is not None:
            await self.accept_gate.wait()
        if self.accept_error is not None:
            raise self.accept_error
        self.accepted.append(suggestion)
        return accepted_response(suggestion)

    async def record_correction(self, correction):
        self.recorded.append(correction)
        return "correction-1"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def manager(backend):
    return SuggestionLifecycleManager(backend, KeyValueDismissalStore({}))


class TestFetch:
    """Test fetching and filtering suggestions."""

    async def test_mount_fetches(self, manager, backend):
        backend.queue([make_suggestion()])

        suggestions = await manager.mount()

        assert [s.pattern for s in suggestions] == ["AMZN MKTP UK"]
        assert manager.state_of(suggestions[0]) == SuggestionState.fetched
        assert manager.is_loading is False

    async def test_permanently_dismissed_patterns_filtered(self, manager, backend):
        manager.dismissals.dismiss("amzn mktp uk")
        backend.queue([make_suggestion(), make_suggestion("tesco", match_type=MatchType.contains)])

        suggestions = await manager.fetch_suggestions()

        assert [s.pattern for s in suggestions] == ["tesco"]

    async def test_fetch_failure_keeps_current_list(self, manager, backend):
        backend.queue([make_suggestion()])
        await manager.fetch_suggestions()

        # Nothing queued, so the next fetch raises inside the backend
        suggestions = await manager.fetch_suggestions()

        assert [s.pattern for s in suggestions] == ["AMZN MKTP UK"]
        assert manager.is_loading is False

    async def test_stale_response_discarded(self, manager, backend):
        slow = asyncio.Event()
        backend.queue([make_suggestion("old pattern")], gate=slow)
        backend.queue([make_suggestion("new pattern")])

        first = asyncio.create_task(manager.fetch_suggestions())
        await asyncio.sleep(0)
        assert manager.is_loading is True

        await manager.fetch_suggestions()
        assert manager.is_loading is True

        slow.set()
        await first

        assert [s.pattern for s in manager.suggestions] == ["new pattern"]
        assert manager.is_loading is False


class TestAccept:
    """Test accepting suggestions."""

    async def test_accept_removes_suggestion(self, manager, backend):
        suggestion = make_suggestion()
        backend.queue([suggestion, make_suggestion("tesco", match_type=MatchType.contains)])
        await manager.fetch_suggestions()

        response = await manager.accept(suggestion)

        assert response.rule.pattern == "AMZN MKTP UK"
        assert [s.pattern for s in manager.suggestions] == ["tesco"]
        assert manager.state_of(suggestion) == SuggestionState.accepted

    async def test_failed_accept_keeps_suggestion(self, manager, backend):
        suggestion = make_suggestion()
        backend.queue([suggestion])
        await manager.fetch_suggestions()
        backend.accept_error = httpx.ConnectError("connection refused")

        with pytest.raises(httpx.ConnectError):
            await manager.accept(suggestion)

        assert manager.suggestions == [suggestion]
        assert manager.state_of(suggestion) == SuggestionState.fetched

        backend.accept_error = None
        await manager.accept(suggestion)
        assert manager.suggestions == []

    async def test_fetch_started_before_accept_does_not_restore_it(self, manager, backend):
        suggestion = make_suggestion()
        slow = asyncio.Event()
        backend.queue([suggestion])
        backend.queue([suggestion], gate=slow)
        await manager.fetch_suggestions()

        refresh = asyncio.create_task(manager.fetch_suggestions())
        await asyncio.sleep(0)
        await manager.accept(suggestion)
        slow.set()
        await refresh

        assert manager.suggestions == []
        assert manager.state_of(suggestion) == SuggestionState.accepted

    async def test_fetch_started_after_accept_is_applied(self, manager, backend):
        suggestion = make_suggestion()
        backend.queue([suggestion])
        backend.queue([suggestion])
        await manager.fetch_suggestions()
        await manager.accept(suggestion)

        await manager.fetch_suggestions()

        assert manager.suggestions == [suggestion]

    async def test_double_accept_rejected_while_in_flight(self, manager, backend):
        suggestion = make_suggestion()
        backend.queue([suggestion])
        await manager.fetch_suggestions()
        backend.accept_gate = asyncio.Event()

        first = asyncio.create_task(manager.accept(suggestion))
        await asyncio.sleep(0)

        with pytest.raises(AcceptInProgressError):
            await manager.accept(suggestion)

        backend.accept_gate.set()
        await first
        assert len(backend.accepted) == 1


class TestDismiss:
    """Test dismissing suggestions."""

    async def test_dismiss_for_session_returns_on_next_fetch(self, manager, backend):
        suggestion = make_suggestion()
        backend.queue([suggestion])
        backend.queue([suggestion])
        await manager.fetch_suggestions()

        manager.dismiss_for_session(suggestion)
        assert manager.suggestions == []
        assert manager.state_of(suggestion) == SuggestionState.dismissed_for_session

        await manager.fetch_suggestions()
        assert manager.suggestions == [suggestion]

    async def test_dismiss_permanently_hides_pattern_in_every_category(self, manager, backend):
        groceries = make_suggestion(category_id="cat-groceries")
        shopping = make_suggestion(pattern="amzn mktp uk", category_id="cat-shopping")
        backend.queue([groceries, shopping])
        backend.queue([groceries, shopping])
        await manager.fetch_suggestions()

        manager.dismiss_permanently(groceries)

        assert manager.suggestions == []
        await manager.fetch_suggestions()
        assert manager.suggestions == []

    async def test_permanent_dismissal_survives_restart(self, backend, tmp_path):
        path = tmp_path / "dismissed.json"
        suggestion = make_suggestion()
        backend.queue([suggestion])
        backend.queue([suggestion])

        first = SuggestionLifecycleManager(backend, KeyValueDismissalStore(JsonFileStore(path)))
        await first.fetch_suggestions()
        first.dismiss_permanently(suggestion)

        restarted = SuggestionLifecycleManager(backend, KeyValueDismissalStore(JsonFileStore(path)))
        assert await restarted.mount() == []


class TestRecordCorrection:
    """Test background correction recording."""

    async def test_records_then_refreshes(self, manager, backend):
        backend.queue([make_suggestion()])

        task = manager.record_correction(CorrectionCreate(
            description="AMZN MKTP UK",
            corrected_category_id="cat-groceries",
        ))
        assert await task == "correction-1"

        assert len(backend.recorded) == 1
        assert backend.fetch_calls == 1
        assert [s.pattern for s in manager.suggestions] == ["AMZN MKTP UK"]


    async def test_backend_error_is_logged_not_raised(self, manager, backend, monkeypatch):
        async def broken_record(correction):
            raise RuntimeError("backend exploded")

        monkeypatch.setattr(backend, "record_correction", broken_record)

        task = manager.record_correction(CorrectionCreate(
            description="AMZN MKTP UK",
            corrected_category_id="cat-groceries",
        ))

        assert await task is None
        assert backend.fetch_calls == 0


class TestApiSuggestionBackend:
    """Test the HTTP backend against a mocked transport."""

    def _backend(self, handler, max_attempts=3):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        return ApiSuggestionBackend(client, max_attempts=max_attempts, retry_delay=0)

    async def test_fetch_suggestions(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "suggestions": [make_suggestion().model_dump(mode="json")],
                "total_corrections": 3,
                "recent_corrections": [],
            })

        result = await self._backend(handler).fetch_suggestions()

        assert seen[0].url.path == "/api/v1/categories/corrections"
        assert seen[0].url.params["action"] == "suggestions"
        assert result.suggestions[0].pattern == "AMZN MKTP UK"
        assert result.total_corrections == 3

    async def test_accept_suggestion(self):
        suggestion = make_suggestion()

        def handler(request):
            body = json.loads(request.content)
            assert body["correction_ids"] == ["c-1", "c-2", "c-3"]
            return httpx.Response(201, json=accepted_response(suggestion).model_dump(mode="json"))

        response = await self._backend(handler).accept_suggestion(suggestion)
        assert response.rule.id == "rule-1"

    async def test_record_retries_with_same_id(self):
        sent_ids = []

        def handler(request):
            body = json.loads(request.content)
            sent_ids.append(body["id"])
            if len(sent_ids) == 1:
                return httpx.Response(503)
            return httpx.Response(201, json={"id": body["id"]})

        correction_id = await self._backend(handler).record_correction(
            CorrectionCreate(description="AMZN MKTP UK", corrected_category_id="cat-groceries")
        )

        assert len(sent_ids) == 2
        assert sent_ids[0] == sent_ids[1]
        assert correction_id == sent_ids[0]

    async def test_record_retries_transport_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(201, json={"id": json.loads(request.content)["id"]})

        correction_id = await self._backend(handler).record_correction(
            CorrectionCreate(id="c-42", description="AMZN MKTP UK", corrected_category_id="cat-groceries")
        )

        assert correction_id == "c-42"
        assert len(calls) == 2

    async def test_record_gives_up_after_max_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        correction_id = await self._backend(handler, max_attempts=3).record_correction(
            CorrectionCreate(description="AMZN MKTP UK", corrected_category_id="cat-groceries")
        )

        assert correction_id is None
        assert len(calls) == 3

    async def test_record_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, json={"detail": "invalid"})

        correction_id = await self._backend(handler).record_correction(
            CorrectionCreate(description="AMZN MKTP UK", corrected_category_id="cat-groceries")
        )

        assert correction_id is None
        assert len(calls) == 1


class TestAgainstApp:
    """Drive the lifecycle against the real API."""

    async def test_corrections_to_rule(self, db_session, sample_category):
        def override_get_db():
            yield db_session

        app.dependency_overrides[get_db] = override_get_db
        try:
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
                manager = SuggestionLifecycleManager(
                    ApiSuggestionBackend(client, retry_delay=0), KeyValueDismissalStore({})
                )

                for _ in range(3):
                    await manager.record_correction(CorrectionCreate(
                        description="AMZN MKTP UK",
                        corrected_category_id=sample_category.id,
                    ))

                assert [s.pattern for s in manager.suggestions] == ["AMZN MKTP UK"]

                response = await manager.accept(manager.suggestions[0])
                assert response.provenance_pending is False

                assert await manager.fetch_suggestions() == []
        finally:
            app.dependency_overrides.clear()

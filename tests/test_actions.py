"""Tests for built-in actions."""

import json
import logging

import httpx
import pytest

from cadence.scheduling import (
    ActionContext,
    ActionRegistry,
    AutomationDefinition,
    AutomationScheduler,
    AutomationStore,
    RunStatus,
)
from cadence.scheduling.actions import (
    ActionPayloadError,
    log_message,
    register_builtin_actions,
    webhook,
)
from tests.conftest import T0, create_definition


def make_definition(action_type: str, payload: dict) -> AutomationDefinition:
    return AutomationDefinition(
        id=3,
        name="test",
        action_type=action_type,
        schedule_kind="interval",
        schedule_expr="5m",
        payload=payload,
    )


@pytest.fixture
def ctx() -> ActionContext:
    return ActionContext(run_id=11, scheduled_at=T0)


@pytest.fixture
def captured_requests(monkeypatch: pytest.MonkeyPatch) -> list[httpx.Request]:
    """Route webhook traffic to an in-memory transport."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/fail":
            return httpx.Response(500)
        return httpx.Response(202)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return requests


class TestLogMessage:
    async def test_logs_and_returns_message(self, ctx, caplog):
        definition = make_definition(
            "log_message", {"message": "backup finished", "level": "warning"}
        )

        with caplog.at_level(logging.INFO, logger="cadence.scheduling.actions"):
            output = await log_message(ctx, definition)

        assert output == "backup finished"
        [record] = [r for r in caplog.records if r.message == "backup finished"]
        assert record.levelno == logging.WARNING

    async def test_missing_message(self, ctx):
        with pytest.raises(
            ActionPayloadError, match="invalid payload for log_message: message"
        ):
            await log_message(ctx, make_definition("log_message", {}))

    async def test_invalid_level(self, ctx):
        definition = make_definition("log_message", {"message": "x", "level": "loud"})
        with pytest.raises(ActionPayloadError, match="level"):
            await log_message(ctx, definition)


class TestWebhook:
    async def test_posts_body_with_headers(self, ctx, captured_requests):
        definition = make_definition(
            "webhook",
            {
                "url": "https://hooks.example.com/notify",
                "headers": {"Authorization": "Bearer t"},
                "body": {"text": "hello"},
            },
        )

        output = await webhook(ctx, definition)

        assert output == "202 Accepted"
        [request] = captured_requests
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer t"
        assert request.headers["X-Cadence-Automation"] == "3"
        assert request.headers["X-Cadence-Scheduled-At"] == T0.isoformat()
        assert json.loads(request.content) == {"text": "hello"}

    async def test_get_without_body(self, ctx, captured_requests):
        definition = make_definition(
            "webhook", {"url": "https://hooks.example.com/ping", "method": "GET"}
        )

        await webhook(ctx, definition)

        assert captured_requests[0].method == "GET"
        assert captured_requests[0].content == b""

    async def test_error_status_raises(self, ctx, captured_requests):
        definition = make_definition(
            "webhook", {"url": "https://hooks.example.com/fail"}
        )
        with pytest.raises(httpx.HTTPStatusError):
            await webhook(ctx, definition)

    async def test_missing_url(self, ctx):
        with pytest.raises(ActionPayloadError, match="url"):
            await webhook(ctx, make_definition("webhook", {"method": "POST"}))


class TestBuiltinRegistration:
    def test_registers_all(self):
        registry = ActionRegistry()
        register_builtin_actions(registry)
        assert registry.names == ["log_message", "webhook"]

    async def test_malformed_payload_fails_run(self, store: AutomationStore):
        registry = ActionRegistry()
        register_builtin_actions(registry)
        definition = await create_definition(
            store, action_type="log_message", payload={"level": "info"}
        )
        scheduler = AutomationScheduler(store, registry, clock=lambda: T0)

        await scheduler.run_once(now=T0)

        [run] = await store.list_runs(definition.id)
        assert run.status == RunStatus.FAILED
        assert run.error == "invalid payload for log_message: message"

"""Built-in actions.

Each action parses its own payload and raises on anything malformed, so a bad
payload shows up as a failed run with a readable error.
"""

import logging
from typing import Any, Literal, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from cadence.scheduling.registry import ActionRegistry
from cadence.scheduling.types import ActionContext, AutomationDefinition

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

WEBHOOK_TIMEOUT = 30.0


class ActionPayloadError(ValueError):
    """An action's payload does not match what the action expects."""


class LogMessagePayload(BaseModel):
    message: str
    level: Literal["debug", "info", "warning", "error"] = "info"


class WebhookPayload(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, str] = {}
    body: dict[str, Any] | None = None
    timeout: float = WEBHOOK_TIMEOUT


def load_payload(model: type[_M], definition: AutomationDefinition) -> _M:
    try:
        return model.model_validate(definition.payload)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "payload" for err in e.errors()
        )
        raise ActionPayloadError(
            f"invalid payload for {definition.action_type}: {fields}"
        ) from e


async def log_message(ctx: ActionContext, definition: AutomationDefinition) -> str:
    """Write the payload message to the log and return it as run output."""
    payload = load_payload(LogMessagePayload, definition)
    logger.log(
        getattr(logging, payload.level.upper()),
        payload.message,
        extra={"automation.id": definition.id, "run.id": ctx.run_id},
    )
    return payload.message


async def webhook(ctx: ActionContext, definition: AutomationDefinition) -> str:
    """Call an HTTP endpoint. Non-2xx responses fail the run."""
    payload = load_payload(WebhookPayload, definition)
    headers = {
        "X-Cadence-Automation": str(definition.id),
        "X-Cadence-Scheduled-At": ctx.scheduled_at.isoformat(),
        **payload.headers,
    }
    async with httpx.AsyncClient(timeout=payload.timeout) as client:
        response = await client.request(
            payload.method,
            payload.url,
            headers=headers,
            json=payload.body,
        )
    response.raise_for_status()
    return f"{response.status_code} {response.reason_phrase}"


BUILTIN_ACTIONS = {
    "log_message": log_message,
    "webhook": webhook,
}


def register_builtin_actions(registry: ActionRegistry) -> None:
    for name, handler in BUILTIN_ACTIONS.items():
        registry.register(name, handler)

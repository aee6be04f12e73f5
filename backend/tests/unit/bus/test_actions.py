"""
Tests for the action bus.

WHY: Every failure a caller can see (unknown action, missing auth, bad
params, timeout, handler errors) must come back as an ActionResult with
the right error kind, and only idempotent actions may be retried.
"""

import asyncio

import pytest
from pydantic import BaseModel, Field

from taskhub.bus.actions import (
    ANONYMOUS,
    ActionBus,
    ActionDef,
    ActionError,
    ActionResult,
    CallerContext,
)
from taskhub.core.exceptions import (
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
)

USER = CallerContext(user_id="u1")


class EchoParams(BaseModel):
    value: str = Field(..., min_length=1)


def make_bus(**kwargs) -> ActionBus:
    kwargs.setdefault("timeout", 1)
    kwargs.setdefault("retry_attempts", 3)
    kwargs.setdefault("retry_backoff", 0)
    return ActionBus(**kwargs)


class TestActionResult:
    def test_ok_unwrap(self):
        assert ActionResult(value=5).unwrap() == 5

    def test_error_unwrap_raises_matching_exception(self):
        result = ActionResult(error=ActionError(ErrorKind.NOT_FOUND, "Missing", {"id": "x"}))
        assert not result.ok
        with pytest.raises(NotFoundError) as exc_info:
            result.unwrap()
        assert exc_info.value.context == {"id": "x"}

    def test_from_exception(self):
        error = ActionError.from_exception(ForbiddenError(user="u1"))
        assert error.kind == ErrorKind.FORBIDDEN
        assert error.details == {"user": "u1"}


class TestRegistry:
    def test_duplicate_registration_rejected(self):
        bus = make_bus()

        async def handler(params, ctx):
            return None

        bus.register("svc.echo", ActionDef(handler, EchoParams))
        with pytest.raises(ValueError):
            bus.register("svc.echo", ActionDef(handler, EchoParams))

    def test_names_sorted(self):
        bus = make_bus()

        async def handler(params, ctx):
            return None

        bus.register("b.x", ActionDef(handler, EchoParams))
        bus.register("a.x", ActionDef(handler, EchoParams))
        assert bus.names == ["a.x", "b.x"]
        bus.unregister("a.x")
        assert not bus.has("a.x")


class TestCall:
    @pytest.mark.asyncio
    async def test_success(self):
        bus = make_bus()

        async def echo(params, ctx):
            return {"value": params.value, "caller": ctx.user_id}

        bus.register("svc.echo", ActionDef(echo, EchoParams))
        result = await bus.call("svc.echo", {"value": "hi"}, USER)

        assert result.ok
        assert result.value == {"value": "hi", "caller": "u1"}

    @pytest.mark.asyncio
    async def test_unknown_action_is_unavailable(self):
        result = await make_bus().call("nope.missing", {}, USER)
        assert result.error.kind == ErrorKind.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_anonymous_rejected_for_protected_action(self):
        bus = make_bus()
        calls = []

        async def handler(params, ctx):
            calls.append(params)

        bus.register("svc.echo", ActionDef(handler, EchoParams))
        result = await bus.call("svc.echo", {"value": "hi"}, ANONYMOUS)

        assert result.error.kind == ErrorKind.UNAUTHORIZED
        assert calls == []

    @pytest.mark.asyncio
    async def test_open_action_allows_anonymous(self):
        bus = make_bus()

        async def handler(params, ctx):
            return "ok"

        bus.register("svc.echo", ActionDef(handler, EchoParams, auth_required=False))
        assert (await bus.call("svc.echo", {"value": "hi"})).value == "ok"

    @pytest.mark.asyncio
    async def test_invalid_params_rejected_before_handler(self):
        bus = make_bus()
        calls = []

        async def handler(params, ctx):
            calls.append(params)

        bus.register("svc.echo", ActionDef(handler, EchoParams))
        result = await bus.call("svc.echo", {"value": ""}, USER)

        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.details["errors"][0]["loc"] == ("value",)
        assert calls == []

    @pytest.mark.asyncio
    async def test_app_exception_becomes_error(self):
        bus = make_bus()

        async def handler(params, ctx):
            raise ForbiddenError(message="Nope")

        bus.register("svc.echo", ActionDef(handler, EchoParams))
        result = await bus.call("svc.echo", {"value": "hi"}, USER)

        assert result.error == ActionError(ErrorKind.FORBIDDEN, "Nope", {})

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_internal(self, caplog):
        bus = make_bus()

        async def handler(params, ctx):
            raise KeyError("boom")

        bus.register("svc.echo", ActionDef(handler, EchoParams))
        result = await bus.call("svc.echo", {"value": "hi"}, USER)

        assert result.error.kind == ErrorKind.INTERNAL
        assert "raised an unexpected error" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        bus = make_bus(timeout=0.05)

        async def slow(params, ctx):
            await asyncio.sleep(5)

        bus.register("svc.slow", ActionDef(slow, EchoParams))
        result = await bus.call("svc.slow", {"value": "hi"}, USER)

        assert result.error.kind == ErrorKind.UNAVAILABLE


class TestRetries:
    """Only idempotent actions are retried, and only on UNAVAILABLE."""

    @staticmethod
    def register_flaky(bus: ActionBus, idempotent: bool, exc=None):
        calls = []

        async def flaky(params, ctx):
            calls.append(params.value)
            raise exc or ServiceUnavailableError()

        bus.register("svc.flaky", ActionDef(flaky, EchoParams, idempotent=idempotent))
        return calls

    @pytest.mark.asyncio
    async def test_idempotent_action_retried(self):
        bus = make_bus(retry_attempts=3)
        calls = self.register_flaky(bus, idempotent=True)

        result = await bus.call("svc.flaky", {"value": "hi"}, USER)

        assert result.error.kind == ErrorKind.UNAVAILABLE
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_mutating_action_not_retried(self):
        bus = make_bus(retry_attempts=3)
        calls = self.register_flaky(bus, idempotent=False)

        await bus.call("svc.flaky", {"value": "hi"}, USER)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        bus = make_bus(retry_attempts=3)
        calls = self.register_flaky(bus, idempotent=True, exc=NotFoundError())

        result = await bus.call("svc.flaky", {"value": "hi"}, USER)

        assert result.error.kind == ErrorKind.NOT_FOUND
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retry_stops_on_success(self):
        bus = make_bus(retry_attempts=3)
        calls = []

        async def recovers(params, ctx):
            calls.append(1)
            if len(calls) < 2:
                raise ServiceUnavailableError()
            return "ok"

        bus.register("svc.recovers", ActionDef(recovers, EchoParams, idempotent=True))
        result = await bus.call("svc.recovers", {"value": "hi"}, USER)

        assert result.value == "ok"
        assert len(calls) == 2

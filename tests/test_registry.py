"""Tests for the action registry."""

import pytest

from cadence.scheduling import ActionRegistry


async def noop(ctx, definition):
    return None


async def other(ctx, definition):
    return "other"


class TestActionRegistry:
    def test_register_and_get(self):
        registry = ActionRegistry()
        registry.register("noop", noop)

        assert registry.get("noop") is noop
        assert "noop" in registry
        assert len(registry) == 1

    def test_missing_action(self):
        registry = ActionRegistry()
        assert registry.get("nothing") is None
        assert "nothing" not in registry

    def test_name_is_stripped(self):
        registry = ActionRegistry()
        registry.register("  noop  ", noop)
        assert registry.get("noop") is noop

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError, match="must not be empty"):
            ActionRegistry().register("   ", noop)

    def test_reregister_replaces(self, caplog):
        registry = ActionRegistry()
        registry.register("job", noop)
        registry.register("job", other)

        assert registry.get("job") is other
        assert len(registry) == 1
        assert "action_replaced" in caplog.text

    def test_decorator(self):
        registry = ActionRegistry()

        @registry.action("decorated")
        async def decorated(ctx, definition):
            return "hi"

        assert registry.get("decorated") is decorated

    def test_names_sorted(self):
        registry = ActionRegistry()
        registry.register("zeta", noop)
        registry.register("alpha", other)

        assert registry.names == ["alpha", "zeta"]
        assert list(registry) == ["alpha", "zeta"]

    def test_unregister(self):
        registry = ActionRegistry()
        registry.register("noop", noop)

        assert registry.unregister("noop")
        assert not registry.unregister("noop")
        assert registry.get("noop") is None

"""Tests for OpenTelemetry instrumentation helpers."""

import pytest

import ideagraph_common.instrumentation as instr
from ideagraph_common.instrumentation import (
    get_tracer,
    init_telemetry,
    instrument_function,
)


class TestInitTelemetry:
    """Tests for init_telemetry function."""

    def test_init_telemetry_creates_provider(self):
        """init_telemetry initializes the tracer provider."""
        instr._tracer_provider = None

        init_telemetry(service_name="test-service")

        assert instr._tracer_provider is not None

    def test_init_telemetry_idempotent(self):
        """Repeated calls keep the first provider."""
        instr._tracer_provider = None

        init_telemetry()
        provider1 = instr._tracer_provider
        init_telemetry()

        assert instr._tracer_provider is provider1

    def test_get_tracer_auto_initializes(self):
        """get_tracer works without explicit initialization."""
        instr._tracer_provider = None

        tracer = get_tracer("ideagraph.test")

        assert tracer is not None
        assert instr._tracer_provider is not None


class TestInstrumentFunction:
    """Tests for the instrument_function decorator."""

    def test_sync_function_wrapped(self):
        @instrument_function("sync_span")
        def add(a: int, b: int) -> int:
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    @pytest.mark.asyncio
    async def test_async_function_wrapped(self):
        @instrument_function()
        async def double(x: int) -> int:
            return x * 2

        assert await double(4) == 8

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self):
        @instrument_function("failing_span")
        async def boom() -> None:
            raise RuntimeError("stage exploded")

        with pytest.raises(RuntimeError, match="stage exploded"):
            await boom()

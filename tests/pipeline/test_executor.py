# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for PipelineBuilder + PipelineExecutor — ordering, short-circuit, faults."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from strata.kernel.exceptions import ContinuationReusedError, MissingResponseError, PipelineFault
from strata.pipeline.builder import PipelineBuilder
from strata.pipeline.continuation import ExecutionTrace
from strata.pipeline.executor import PipelineExecutor
from strata.pipeline.filters import BaseFilter, FilterBinding

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


@dataclass
class FakeRequest:
    attrs: dict = field(default_factory=dict)
    events: list[str] = field(default_factory=list)


@dataclass
class FakeResponse:
    body: str
    status: int = 200
    headers: dict = field(default_factory=dict)


class Recorder(BaseFilter):
    """Records entry and unwind, and the response seen on the way out."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def handle(self, request, call_next, *params):
        request.events.append(f"enter:{self.name}")
        response = await call_next(request)
        request.events.append(f"exit:{self.name}:{response.body}")
        return response


class ShortCircuit(BaseFilter):
    name = "short"

    async def handle(self, request, call_next, *params):
        request.events.append("enter:short")
        return FakeResponse("blocked", status=429)


class Explode(BaseFilter):
    name = "explode"

    async def handle(self, request, call_next, *params):
        request.events.append("enter:explode")
        raise RuntimeError("boom")


class Catcher(BaseFilter):
    """Converts an inner fault into a 500 response."""

    name = "catcher"

    async def handle(self, request, call_next, *params):
        try:
            return await call_next(request)
        except RuntimeError as exc:
            request.events.append(f"caught:{exc}")
            return FakeResponse("recovered", status=500)


class CallsNextTwice(BaseFilter):
    name = "twice"

    async def handle(self, request, call_next, *params):
        await call_next(request)
        return await call_next(request)


class ReturnsNothing(BaseFilter):
    name = "nothing"

    async def handle(self, request, call_next, *params):
        return None


class SwallowsEverything(BaseFilter):
    name = "swallow"

    async def handle(self, request, call_next, *params):
        try:
            return await call_next(request)
        except Exception:
            return FakeResponse("swallowed")


class Echo:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self, request):
        self.calls += 1
        request.events.append("terminal")
        return FakeResponse("echo")


async def _run(filters, request=None, terminal=None):
    request = request or FakeRequest()
    terminal = terminal or Echo()
    handler = PipelineBuilder().build(terminal, filters)
    result = await PipelineExecutor().execute(handler, request)
    return request, result


def _keys(bindings):
    return [binding.key for binding in bindings]


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    @pytest.mark.asyncio
    async def test_enter_in_order_unwind_in_reverse(self):
        request, result = await _run([Recorder("f0"), Recorder("f1"), Recorder("f2")])
        assert request.events == [
            "enter:f0",
            "enter:f1",
            "enter:f2",
            "terminal",
            "exit:f2:echo",
            "exit:f1:echo",
            "exit:f0:echo",
        ]
        assert result.response.body == "echo"
        assert _keys(result.executed_filters) == ["f0", "f1", "f2"]

    @pytest.mark.asyncio
    async def test_empty_chain_calls_terminal(self):
        request, result = await _run([])
        assert request.events == ["terminal"]
        assert result.executed_filters == ()

    @pytest.mark.asyncio
    async def test_sync_terminal_handler(self):
        def terminal(request):
            return FakeResponse("sync")

        _, result = await _run([Recorder("f0")], terminal=terminal)
        assert result.response.body == "sync"

    @pytest.mark.asyncio
    async def test_filter_may_replace_request(self):
        class Swap(BaseFilter):
            async def handle(self, request, call_next, *params):
                return await call_next(FakeRequest(attrs={"swapped": True}))

        async def terminal(request):
            return FakeResponse(str(request.attrs.get("swapped", False)))

        _, result = await _run([Swap()], terminal=terminal)
        assert result.response.body == "True"

    @pytest.mark.asyncio
    async def test_params_passed_to_handle(self):
        seen = []

        class Throttle(BaseFilter):
            async def handle(self, request, call_next, *params):
                seen.append(params)
                return await call_next(request)

        binding = FilterBinding.of(Throttle(), "throttle", ("60", "1"))
        await _run([binding])
        assert seen == [("60", "1")]

    @pytest.mark.asyncio
    async def test_duplicate_filter_runs_twice(self):
        f = Recorder("dup")
        request, result = await _run([f, f])
        assert request.events.count("enter:dup") == 2
        assert _keys(result.executed_filters) == ["dup", "dup"]


# ---------------------------------------------------------------------------
# Short-circuit
# ---------------------------------------------------------------------------


class TestShortCircuit:
    @pytest.mark.asyncio
    async def test_inner_filters_and_terminal_never_run(self):
        terminal = Echo()
        request, result = await _run(
            [Recorder("f0"), Recorder("f1"), ShortCircuit(), Recorder("f3")],
            terminal=terminal,
        )
        assert terminal.calls == 0
        assert "enter:f3" not in request.events
        assert result.response.status == 429

    @pytest.mark.asyncio
    async def test_outer_filters_see_short_circuit_response(self):
        request, _ = await _run([Recorder("f0"), Recorder("f1"), ShortCircuit()])
        assert request.events[-2:] == ["exit:f1:blocked", "exit:f0:blocked"]

    @pytest.mark.asyncio
    async def test_executed_filters_is_prefix(self):
        chain = [Recorder("f0"), ShortCircuit(), Recorder("f2")]
        _, result = await _run(chain)
        assert _keys(result.executed_filters) == ["f0", "short"]

    @pytest.mark.asyncio
    async def test_outer_filter_decorates_short_circuit_response(self):
        class AddHeader(BaseFilter):
            async def handle(self, request, call_next, *params):
                response = await call_next(request)
                response.headers["X-Decorated"] = "yes"
                return response

        _, result = await _run([AddHeader(), ShortCircuit()])
        assert result.response.headers == {"X-Decorated": "yes"}


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------


class TestFaults:
    @pytest.mark.asyncio
    async def test_fault_before_next_stops_inward_progress(self):
        terminal = Echo()
        request, result = await _run(
            [Catcher(), Explode(), Recorder("inner")],
            terminal=terminal,
        )
        assert terminal.calls == 0
        assert "enter:inner" not in request.events
        assert request.events == ["enter:explode", "caught:boom"]
        assert result.response.body == "recovered"
        assert _keys(result.executed_filters) == ["catcher", "explode"]

    @pytest.mark.asyncio
    async def test_fault_observed_at_immediately_enclosing_call_site(self):
        observed: list[tuple[str, str]] = []

        class Observer(BaseFilter):
            def __init__(self, name):
                self.name = name

            async def handle(self, request, call_next, *params):
                try:
                    return await call_next(request)
                except RuntimeError as exc:
                    observed.append((self.name, str(exc)))
                    raise

        with pytest.raises(PipelineFault):
            await _run([Observer("outer"), Observer("enclosing"), Explode()])
        assert observed == [("enclosing", "boom"), ("outer", "boom")]

    @pytest.mark.asyncio
    async def test_terminal_fault_propagates_through_filters(self):
        async def terminal(request):
            raise RuntimeError("terminal failed")

        request, result = await _run([Catcher(), Recorder("f1")], terminal=terminal)
        assert "exit:f1:echo" not in request.events
        assert result.response.status == 500

    @pytest.mark.asyncio
    async def test_uncaught_fault_wrapped_in_pipeline_fault(self):
        with pytest.raises(PipelineFault) as exc_info:
            await _run([Recorder("f0"), Explode(), Recorder("f2")])
        fault = exc_info.value
        assert isinstance(fault.cause, RuntimeError)
        assert fault.__cause__ is fault.cause
        assert fault.contract_violation is False
        assert fault.code == "PIPELINE_FAULT"
        assert _keys(fault.executed_filters) == ["f0", "explode"]


# ---------------------------------------------------------------------------
# Contract violations
# ---------------------------------------------------------------------------


class TestContractViolations:
    @pytest.mark.asyncio
    async def test_second_next_call_fails_fast(self):
        terminal = Echo()
        with pytest.raises(PipelineFault) as exc_info:
            await _run([CallsNextTwice()], terminal=terminal)
        assert exc_info.value.contract_violation is True
        assert isinstance(exc_info.value.cause, ContinuationReusedError)
        assert terminal.calls == 1

    @pytest.mark.asyncio
    async def test_no_response_without_next(self):
        with pytest.raises(PipelineFault) as exc_info:
            await _run([Recorder("f0"), ReturnsNothing()])
        cause = exc_info.value.cause
        assert isinstance(cause, MissingResponseError)
        assert cause.owner == "nothing"
        assert cause.called_next is False
        assert exc_info.value.code == "PIPELINE_CONTRACT_VIOLATION"

    @pytest.mark.asyncio
    async def test_terminal_returning_none_is_violation(self):
        async def terminal(request):
            return None

        with pytest.raises(PipelineFault) as exc_info:
            await _run([], terminal=terminal)
        assert exc_info.value.contract_violation is True

    @pytest.mark.asyncio
    async def test_swallowed_violation_still_reported(self):
        with pytest.raises(PipelineFault) as exc_info:
            await _run([SwallowsEverything(), CallsNextTwice()])
        assert exc_info.value.contract_violation is True
        assert isinstance(exc_info.value.cause, ContinuationReusedError)

    @pytest.mark.asyncio
    async def test_application_fault_is_not_violation(self):
        with pytest.raises(PipelineFault) as exc_info:
            await _run([Explode()])
        assert exc_info.value.contract_violation is False


# ---------------------------------------------------------------------------
# Scenario: Auth, Logger, AgeGate, Echo
# ---------------------------------------------------------------------------


class AgeGate(BaseFilter):
    name = "age_gate"

    def __init__(self, threshold: int) -> None:
        self.threshold = threshold

    async def handle(self, request, call_next, *params):
        request.events.append("enter:age_gate")
        if request.attrs["age"] <= self.threshold:
            return FakeResponse("redirect:/home", status=302)
        return await call_next(request)


class TestAgeGateScenario:
    @pytest.mark.asyncio
    async def test_young_request_redirected(self):
        echo = Echo()
        request = FakeRequest(attrs={"age": 150})
        _, result = await _run([Recorder("auth"), Recorder("logger"), AgeGate(200)], request, echo)
        assert echo.calls == 0
        assert result.response.status == 302
        assert request.events[-2:] == ["exit:logger:redirect:/home", "exit:auth:redirect:/home"]

    @pytest.mark.asyncio
    async def test_old_request_reaches_echo(self):
        echo = Echo()
        request = FakeRequest(attrs={"age": 250})
        _, result = await _run([Recorder("auth"), Recorder("logger"), AgeGate(200)], request, echo)
        assert echo.calls == 1
        assert result.response.body == "echo"
        assert request.events[-2:] == ["exit:logger:echo", "exit:auth:echo"]
        assert _keys(result.executed_filters) == ["auth", "logger", "age_gate"]


# ---------------------------------------------------------------------------
# Concurrency and cancellation
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_executions_are_isolated(self):
        class Tag(BaseFilter):
            async def handle(self, request, call_next, *params):
                request.attrs["seen"] = request.attrs["id"]
                await asyncio.sleep(0)
                response = await call_next(request)
                await asyncio.sleep(0)
                return response

        async def terminal(request):
            await asyncio.sleep(0)
            return FakeResponse(str(request.attrs["seen"]))

        handler = PipelineBuilder().build(terminal, [Tag(), Recorder("r")])
        executor = PipelineExecutor()
        results = await asyncio.gather(
            *(executor.execute(handler, FakeRequest(attrs={"id": i})) for i in range(50))
        )
        assert [result.response.body for result in results] == [str(i) for i in range(50)]

    @pytest.mark.asyncio
    async def test_cancelled_execution_keeps_entered_filters(self):
        started = asyncio.Event()

        class Slow(BaseFilter):
            name = "slow"

            async def handle(self, request, call_next, *params):
                started.set()
                await asyncio.sleep(10)
                return await call_next(request)

        handler = PipelineBuilder().build(Echo(), [Recorder("outer"), Slow(), Recorder("never")])
        trace = ExecutionTrace()
        task = asyncio.create_task(PipelineExecutor().execute(handler, FakeRequest(), trace))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert _keys(trace.entered) == ["outer", "slow"]


class TestBuilder:
    @pytest.mark.asyncio
    async def test_same_filters_build_equivalent_handlers(self):
        filters = [Recorder("f0"), Recorder("f1")]
        builder = PipelineBuilder()
        first = builder.build(Echo(), filters)
        second = builder.build(Echo(), filters)
        req_a, req_b = FakeRequest(), FakeRequest()
        await first(req_a)
        await second(req_b)
        assert req_a.events == req_b.events

    @pytest.mark.asyncio
    async def test_composed_handler_reusable_across_requests(self):
        handler = PipelineBuilder().build(Echo(), [Recorder("f0")])
        for _ in range(3):
            request = FakeRequest()
            await handler(request)
            assert request.events == ["enter:f0", "terminal", "exit:f0:echo"]

    def test_bare_filters_are_bound(self):
        handler = PipelineBuilder().build(Echo(), [Recorder("f0"), ShortCircuit()])
        assert _keys(handler.chain) == ["f0", "short"]
        assert "f0" in repr(handler)

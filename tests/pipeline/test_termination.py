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
"""Tests for TerminationDispatcher — order, isolation, scope."""

from __future__ import annotations

import asyncio

import pytest

from strata.pipeline.builder import PipelineBuilder
from strata.pipeline.executor import PipelineExecutor
from strata.pipeline.filters import BaseFilter, FilterBinding, TerminableFilter
from strata.pipeline.termination import TerminationDispatcher


class Hooked(TerminableFilter):
    """Passes through and records its terminate call in a shared log."""

    def __init__(self, name: str, log: list, fail: bool = False, short: bool = False) -> None:
        self.name = name
        self.log = log
        self.fail = fail
        self.short = short

    async def handle(self, request, call_next, *params):
        if self.short:
            return "short-circuited"
        return await call_next(request)

    def terminate(self, request, response):
        self.log.append((self.name, response))
        if self.fail:
            raise RuntimeError(f"{self.name} cleanup failed")


class AsyncHooked(TerminableFilter):
    def __init__(self, name: str, log: list) -> None:
        self.name = name
        self.log = log

    async def handle(self, request, call_next, *params):
        return await call_next(request)

    async def terminate(self, request, response):
        await asyncio.sleep(0)
        self.log.append((self.name, response))


class Plain(BaseFilter):
    name = "plain"

    async def handle(self, request, call_next, *params):
        return await call_next(request)


async def _terminal(request):
    return "ok"


async def _execute(filters):
    handler = PipelineBuilder().build(_terminal, filters)
    return await PipelineExecutor().execute(handler, object())


class TestDispatchOrder:
    @pytest.mark.asyncio
    async def test_forward_entry_order_not_reversed(self):
        log: list = []
        result = await _execute([Hooked("a", log), Plain(), Hooked("b", log), AsyncHooked("c", log)])
        report = await TerminationDispatcher().dispatch(result.executed_filters, object(), result.response)
        assert log == [("a", "ok"), ("b", "ok"), ("c", "ok")]
        assert report.invoked == ["a", "b", "c"]
        assert report.ok

    @pytest.mark.asyncio
    async def test_only_executed_filters_terminated(self):
        log: list = []
        result = await _execute([Hooked("outer", log), Hooked("gate", log, short=True), Hooked("inner", log)])
        await TerminationDispatcher().dispatch(result.executed_filters, object(), result.response)
        assert log == [("outer", "short-circuited"), ("gate", "short-circuited")]

    @pytest.mark.asyncio
    async def test_each_hook_runs_once(self):
        log: list = []
        result = await _execute([Hooked("a", log), Hooked("b", log)])
        await TerminationDispatcher().dispatch(result.executed_filters, object(), result.response)
        assert [name for name, _ in log] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_plain_filters_are_skipped(self):
        report = await TerminationDispatcher().dispatch([FilterBinding.of(Plain())], object(), "ok")
        assert report.invoked == []


class TestIsolation:
    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_the_rest(self):
        log: list = []
        bindings = [
            FilterBinding.of(Hooked("a", log, fail=True)),
            FilterBinding.of(Hooked("b", log)),
            FilterBinding.of(Hooked("c", log, fail=True)),
        ]
        report = await TerminationDispatcher().dispatch(bindings, object(), "ok")
        assert [name for name, _ in log] == ["a", "b", "c"]
        assert not report.ok
        assert [failure.key for failure in report.failures] == ["a", "c"]
        assert str(report.failures[0].error) == "a cleanup failed"


class TestBackground:
    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self):
        log: list = []
        dispatcher = TerminationDispatcher()
        task = dispatcher.schedule([FilterBinding.of(AsyncHooked("a", log))], object(), "ok")
        assert dispatcher.pending == 1
        report = await task
        assert report.invoked == ["a"]
        assert log == [("a", "ok")]

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self):
        log: list = []
        dispatcher = TerminationDispatcher()
        for name in ("a", "b"):
            dispatcher.schedule([FilterBinding.of(AsyncHooked(name, log))], object(), "ok")
        await dispatcher.drain()
        assert sorted(name for name, _ in log) == ["a", "b"]
        assert dispatcher.pending == 0

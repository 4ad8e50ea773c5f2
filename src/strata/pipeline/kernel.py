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
"""PipelineKernel — the facade a host uses to run requests through filters.

Ties the registry, builder, executor and termination dispatcher together and
owns the ordering between response delivery and termination::

    result = await kernel.serve(request, terminal, deliver, route_keys=["auth"])

``serve`` resolves the chain, executes it, awaits ``deliver(response)`` and
only then runs the termination hooks of the filters that executed.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable
from typing import Any, Literal

import structlog

from strata.core.config import Config
from strata.kernel.exceptions import MissingResponseError, PipelineFault
from strata.pipeline.bootstrap import load_properties, registry_from_properties
from strata.pipeline.builder import PipelineBuilder
from strata.pipeline.continuation import ExecutionTrace
from strata.pipeline.executor import ExecutionResult, PipelineExecutor
from strata.pipeline.filters import FilterBinding
from strata.pipeline.ports.filter import Handler
from strata.pipeline.registry import FilterRegistry
from strata.pipeline.termination import TerminationDispatcher, TerminationReport

logger = structlog.get_logger("strata.pipeline")

# (request, fault) -> failure response; may be async.
FaultResponder = Callable[[Any, PipelineFault], Any]

# response -> None; hands the response to the transport. May be async.
Deliver = Callable[[Any], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _responder_name(responder: Any) -> str:
    return getattr(responder, "__qualname__", None) or type(responder).__name__


class PipelineKernel:
    """Runs requests through the filters of a frozen :class:`FilterRegistry`.

    Args:
        registry: Filter registry. Frozen on construction if it is not yet.
        termination: ``"inline"`` awaits termination hooks after delivery,
            ``"background"`` schedules them as a task.
        fault_responder: Turns a :class:`PipelineFault` into a failure
            response. Without one, :meth:`serve` re-raises the fault.
    """

    def __init__(
        self,
        registry: FilterRegistry,
        *,
        builder: PipelineBuilder | None = None,
        executor: PipelineExecutor | None = None,
        dispatcher: TerminationDispatcher | None = None,
        termination: Literal["inline", "background"] = "inline",
        fault_responder: FaultResponder | None = None,
    ) -> None:
        self.registry = registry.freeze()
        self.builder = builder or PipelineBuilder()
        self.executor = executor or PipelineExecutor()
        self.dispatcher = dispatcher or TerminationDispatcher()
        self.termination = termination
        self.fault_responder = fault_responder

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> PipelineKernel:
        """Build a kernel from the ``strata.pipeline`` configuration section."""
        properties = load_properties(config)
        kwargs.setdefault("termination", properties.termination)
        return cls(registry_from_properties(properties), **kwargs)

    def chain_for(
        self,
        route_keys: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> tuple[FilterBinding, ...]:
        return self.registry.resolve_chain(route_keys, exclude)

    async def handle(
        self,
        request: Any,
        terminal: Handler,
        route_keys: Iterable[str] = (),
        exclude: Iterable[str] = (),
        trace: ExecutionTrace | None = None,
    ) -> ExecutionResult:
        """Resolve, build and execute the chain. Does not run termination."""
        chain = self.chain_for(route_keys, exclude)
        handler = self.builder.build(terminal, chain)
        return await self.executor.execute(handler, request, trace)

    async def terminate(self, request: Any, result: ExecutionResult) -> TerminationReport:
        """Run termination hooks. Call only after the response was delivered."""
        return await self.dispatcher.dispatch(result.executed_filters, request, result.response)

    async def serve(
        self,
        request: Any,
        terminal: Handler,
        deliver: Deliver,
        route_keys: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> ExecutionResult:
        """Handle *request*, deliver the response, then terminate."""
        trace = ExecutionTrace()
        try:
            result = await self.handle(request, terminal, route_keys, exclude, trace)
        except PipelineFault as fault:
            if self.fault_responder is None:
                self.dispatcher.schedule(fault.executed_filters, request, None)
                raise
            try:
                response = await _maybe_await(self.fault_responder(request, fault))
                if response is None:
                    raise MissingResponseError(_responder_name(self.fault_responder))
            except BaseException:
                self.dispatcher.schedule(fault.executed_filters, request, None)
                raise
            result = ExecutionResult(response=response, executed_filters=fault.executed_filters)
        except asyncio.CancelledError:
            logger.info("pipeline_cancelled", filters=[binding.key for binding in trace.entered])
            self.dispatcher.schedule(trace.executed_filters, request, None)
            raise

        try:
            await _maybe_await(deliver(result.response))
        except BaseException:
            self.dispatcher.schedule(result.executed_filters, request, result.response)
            raise

        if self.termination == "background":
            self.dispatcher.schedule(result.executed_filters, request, result.response)
        else:
            await self.terminate(request, result)
        return result

    async def shutdown(self) -> None:
        """Wait for background termination work to finish."""
        await self.dispatcher.drain()

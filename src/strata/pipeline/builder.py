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
"""PipelineBuilder — folds a filter chain around a terminal handler."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from strata.kernel.exceptions import MissingResponseError
from strata.pipeline.continuation import Continuation, ExecutionTrace
from strata.pipeline.filters import FilterBinding
from strata.pipeline.ports.filter import Handler

# One layer of the onion: (request, trace) -> response
Step = Callable[[Any, ExecutionTrace], Awaitable[Any]]


class ComposedHandler:
    """A chain of filters wrapped around a terminal handler.

    Equivalent to ``f0.handle(req, f1.handle(req, ... fn.handle(req, terminal)))``.
    Holds no per-request state: every call gets (or creates) its own
    :class:`ExecutionTrace` and its own continuations.
    """

    __slots__ = ("_entry", "chain", "terminal")

    def __init__(self, entry: Step, chain: tuple[FilterBinding, ...], terminal: Handler) -> None:
        self._entry = entry
        self.chain = chain
        self.terminal = terminal

    async def __call__(self, request: Any, trace: ExecutionTrace | None = None) -> Any:
        return await self._entry(request, trace if trace is not None else ExecutionTrace())

    def __repr__(self) -> str:
        keys = [binding.key for binding in self.chain]
        return f"<ComposedHandler chain={keys} terminal={_handler_name(self.terminal)}>"


class PipelineBuilder:
    """Builds :class:`ComposedHandler` instances. Stateless and reusable."""

    def build(self, terminal: Handler, filters: Iterable[FilterBinding | Any]) -> ComposedHandler:
        """Fold *filters* from last to first around *terminal*.

        *filters* may mix resolved :class:`FilterBinding` records and bare
        filter instances; bare filters are bound under their label.
        """
        chain = tuple(f if isinstance(f, FilterBinding) else FilterBinding.of(f) for f in filters)

        step: Step = _terminal_step(terminal)
        for binding in reversed(chain):
            step = _wrap(binding, step)

        return ComposedHandler(step, chain, terminal)


def _terminal_step(terminal: Handler) -> Step:
    name = _handler_name(terminal)

    async def _call_terminal(request: Any, trace: ExecutionTrace) -> Any:
        trace.terminal_reached = True
        response = terminal(request)
        if inspect.isawaitable(response):
            response = await response
        if response is None:
            violation = MissingResponseError(name, called_next=False)
            trace.record_violation(violation)
            raise violation
        return response

    return _call_terminal


def _wrap(binding: FilterBinding, inner: Step) -> Step:
    """Create the step that enters *binding* and hands it a fresh continuation."""

    async def _inner(request: Any, trace: ExecutionTrace) -> Any:
        trace.enter(binding)
        call_next = Continuation(inner, binding.key, trace)
        response = await binding.filter.handle(request, call_next, *binding.params)
        if response is None:
            violation = MissingResponseError(binding.key, called_next=call_next.consumed)
            trace.record_violation(violation)
            raise violation
        return response

    return _inner


def _handler_name(handler: Any) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__

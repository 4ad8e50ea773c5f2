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
"""Single-use continuation and the per-execution trace."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from strata.kernel.exceptions import ContinuationReusedError, ContractViolation
from strata.pipeline.filters import FilterBinding


@dataclass(slots=True)
class ExecutionTrace:
    """What happened during one execution of a composed handler.

    Created per request and passed down the chain; never stored on the
    composed handler, so concurrent executions cannot observe each other.
    """

    entered: list[FilterBinding] = field(default_factory=list)
    terminal_reached: bool = False
    violation: ContractViolation | None = None

    def enter(self, binding: FilterBinding) -> None:
        self.entered.append(binding)

    def record_violation(self, violation: ContractViolation) -> None:
        # The first violation is the root cause; later ones are consequences.
        if self.violation is None:
            self.violation = violation

    @property
    def executed_filters(self) -> tuple[FilterBinding, ...]:
        return tuple(self.entered)


class Continuation:
    """``call_next`` for one filter invocation: the rest of the chain inward.

    A small state machine. The first call moves it from *pending* to
    *consumed* and runs the inner chain; any further call raises
    :class:`ContinuationReusedError` instead of re-running it.
    """

    __slots__ = ("_inner", "_owner", "_trace", "_consumed")

    def __init__(
        self,
        inner: Callable[[Any, ExecutionTrace], Awaitable[Any]],
        owner: str,
        trace: ExecutionTrace,
    ) -> None:
        self._inner = inner
        self._owner = owner
        self._trace = trace
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    async def __call__(self, request: Any) -> Any:
        if self._consumed:
            violation = ContinuationReusedError(self._owner)
            self._trace.record_violation(violation)
            raise violation
        self._consumed = True
        return await self._inner(request, self._trace)

    def __repr__(self) -> str:
        state = "consumed" if self._consumed else "pending"
        return f"<Continuation of {self._owner!r} ({state})>"

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
"""PipelineExecutor — runs a composed chain once for one request."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import structlog

from strata.kernel.exceptions import ContractViolation, PipelineFault
from strata.pipeline.builder import ComposedHandler
from strata.pipeline.continuation import ExecutionTrace
from strata.pipeline.filters import FilterBinding

logger = structlog.get_logger("strata.pipeline")


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """The response and the filters whose ``handle`` was entered, in entry order."""

    response: Any
    executed_filters: tuple[FilterBinding, ...]


class PipelineExecutor:
    """Invokes a :class:`ComposedHandler` and enforces the fault rules.

    * Faults escaping the outermost filter become :class:`PipelineFault`.
    * Contract violations become ``PipelineFault(contract_violation=True)``,
      even when an enclosing filter caught the violation and returned a
      response of its own.
    * ``asyncio.CancelledError`` and other ``BaseException`` are not wrapped.
      Pass your own *trace* to know which filters entered before them.
    """

    async def execute(
        self,
        handler: ComposedHandler,
        request: Any,
        trace: ExecutionTrace | None = None,
    ) -> ExecutionResult:
        trace = trace if trace is not None else ExecutionTrace()
        start = time.perf_counter()

        try:
            response = await handler(request, trace)
        except ContractViolation as exc:
            root = trace.violation or exc
            raise self._fault(root, trace, contract_violation=True) from root
        except Exception as exc:
            if trace.violation is not None:
                raise self._fault(trace.violation, trace, contract_violation=True) from trace.violation
            raise self._fault(exc, trace) from exc

        if trace.violation is not None:
            raise self._fault(trace.violation, trace, contract_violation=True) from trace.violation

        logger.debug(
            "pipeline_executed",
            filters=[binding.key for binding in trace.entered],
            terminal_reached=trace.terminal_reached,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return ExecutionResult(response=response, executed_filters=trace.executed_filters)

    @staticmethod
    def _fault(cause: BaseException, trace: ExecutionTrace, contract_violation: bool = False) -> PipelineFault:
        fault = PipelineFault(cause, trace.executed_filters, contract_violation=contract_violation)
        logger.error(
            "pipeline_fault",
            code=fault.code,
            error=str(cause),
            error_type=type(cause).__name__,
            filters=[binding.key for binding in trace.entered],
            terminal_reached=trace.terminal_reached,
        )
        return fault

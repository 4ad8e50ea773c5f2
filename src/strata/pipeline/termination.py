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
"""TerminationDispatcher — post-response hooks for filters that ran."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from strata.pipeline.filters import FilterBinding

logger = structlog.get_logger("strata.pipeline")


@dataclass(frozen=True, slots=True)
class TerminationFailure:
    key: str
    error: Exception


@dataclass(slots=True)
class TerminationReport:
    """Outcome of one dispatch: which hooks ran and which of them failed."""

    invoked: list[str] = field(default_factory=list)
    failures: list[TerminationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class TerminationDispatcher:
    """Invokes ``terminate`` on executed, terminable filters.

    Hooks run in the order the filters entered the forward chain (outermost
    first), once each. A failing hook is logged and recorded in the report;
    it never stops the remaining hooks and is never re-raised.

    :meth:`dispatch` must only be awaited once the response has been handed
    to the transport. :meth:`schedule` runs the same work as a background task
    so it cannot delay delivery at all.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[TerminationReport]] = set()

    async def dispatch(
        self,
        executed_filters: Iterable[FilterBinding],
        request: Any,
        response: Any,
    ) -> TerminationReport:
        report = TerminationReport()
        for binding in executed_filters:
            if not binding.terminable:
                continue
            report.invoked.append(binding.key)
            try:
                result = binding.filter.terminate(request, response)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                report.failures.append(TerminationFailure(binding.key, exc))
                logger.error(
                    "termination_failed",
                    filter=binding.key,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        if report.failures:
            logger.warning(
                "termination_completed_with_failures",
                invoked=report.invoked,
                failed=[failure.key for failure in report.failures],
            )
        return report

    def schedule(
        self,
        executed_filters: Iterable[FilterBinding],
        request: Any,
        response: Any,
    ) -> asyncio.Task[TerminationReport]:
        """Run :meth:`dispatch` in the background on the running loop."""
        task = asyncio.get_running_loop().create_task(
            self.dispatch(tuple(executed_filters), request, response)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled dispatch to finish (e.g. on shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

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
"""Starlette filters shipped with the adapter."""

from __future__ import annotations

import time
import uuid
from typing import Any, cast

import structlog
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from strata.kernel.exceptions import PipelineFault
from strata.pipeline.filters import BaseFilter, TerminableFilter
from strata.pipeline.ports.filter import CallNext

logger = structlog.get_logger("strata.web")

TRANSACTION_ID_HEADER = "X-Transaction-Id"


class TransactionIdFilter(BaseFilter):
    """Injects or propagates ``X-Transaction-Id`` on every request/response."""

    name = "transaction_id"

    async def handle(self, request: Request, call_next: CallNext, *params: str) -> Response:
        tx_id = request.headers.get(TRANSACTION_ID_HEADER) or str(uuid.uuid4())
        request.state.transaction_id = tx_id
        response = cast(Response, await call_next(request))
        response.headers[TRANSACTION_ID_HEADER] = tx_id
        return response


class RequestLoggingFilter(TerminableFilter):
    """Logs method, path, status code, and duration once the response was sent.

    The start time lives on ``request.state`` so one instance can serve
    concurrent requests.
    """

    name = "request_logging"

    async def handle(self, request: Request, call_next: CallNext, *params: str) -> Response:
        request.state.strata_started_at = time.perf_counter()
        return cast(Response, await call_next(request))

    def terminate(self, request: Request, response: Response | None) -> None:
        started_at = getattr(request.state, "strata_started_at", None)
        duration_ms = round((time.perf_counter() - started_at) * 1000, 2) if started_at is not None else None
        tx_id = getattr(request.state, "transaction_id", None)

        if response is None:
            logger.warning(
                "http_request_aborted",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
                transaction_id=tx_id,
            )
            return

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            transaction_id=tx_id,
        )


def server_error_responder(request: Any, fault: PipelineFault) -> Response:
    """Fault responder mapping any :class:`PipelineFault` to a bare 500."""
    return PlainTextResponse("Internal Server Error", status_code=500)

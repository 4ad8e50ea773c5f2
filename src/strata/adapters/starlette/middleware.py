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
"""PipelineMiddleware — pure ASGI middleware running a strata pipeline."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from strata.pipeline.kernel import PipelineKernel

# request -> route filter keys (or keys to exclude)
KeySelector = Callable[[Request], Sequence[str]]


class PipelineMiddleware:
    """Pure ASGI middleware that runs every HTTP request through a pipeline.

    The downstream ASGI app is the terminal handler: its response is captured
    so filters can inspect or decorate it. The response is sent to the client
    first; termination hooks run afterwards.

    Uses raw ASGI protocol instead of ``BaseHTTPMiddleware`` so termination
    can be sequenced after the final body message has been sent.
    """

    def __init__(
        self,
        app: ASGIApp,
        kernel: PipelineKernel,
        route_keys: KeySelector | None = None,
        exclude: KeySelector | None = None,
    ) -> None:
        self.app = app
        self.kernel = kernel
        self._route_keys = route_keys
        self._exclude = exclude

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive, send)

        async def _call_app(req: Any) -> Response:
            """Terminal: run downstream ASGI app and capture its response."""
            status_code = 200
            raw_headers: list[tuple[bytes, bytes]] = []
            body_parts: list[bytes] = []

            async def _intercept(message: Any) -> None:
                nonlocal status_code, raw_headers
                if message["type"] == "http.response.start":
                    status_code = message["status"]
                    raw_headers = list(message.get("headers", []))
                elif message["type"] == "http.response.body":
                    body = message.get("body", b"")
                    if body:
                        body_parts.append(body)
                elif message["type"] == "http.response.pathsend":
                    path = message.get("path", "")
                    if path:
                        body_parts.append(Path(path).read_bytes())

            await self.app(scope, receive, _intercept)

            response = Response(content=b"".join(body_parts), status_code=status_code)
            response.raw_headers[:] = raw_headers
            return response

        async def _deliver(response: Response) -> None:
            await response(scope, receive, send)

        await self.kernel.serve(
            request,
            _call_app,
            _deliver,
            route_keys=self._route_keys(request) if self._route_keys else (),
            exclude=self._exclude(request) if self._exclude else (),
        )

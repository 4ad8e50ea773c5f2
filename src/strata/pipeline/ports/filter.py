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
"""Filter protocol — framework-agnostic filter interface.

Uses generic ``Any`` types for Request/Response so that host-specific types
(e.g. Starlette) remain confined to the adapter layer.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any, Protocol, runtime_checkable

# Type alias for the continuation handed to a filter.
# Concrete type: strata.pipeline.continuation.Continuation
CallNext = Callable[[Any], Coroutine[Any, Any, Any]]

# The innermost application operation. May be sync or async.
Handler = Callable[[Any], Any]


@runtime_checkable
class Filter(Protocol):
    """Protocol for request/response filters.

    Code before ``await call_next(request)`` is the filter's before-phase,
    code after it is the after-phase. Returning a response without calling
    ``call_next`` short-circuits the chain.

    Implement this protocol directly *or* extend :class:`BaseFilter`; extend
    :class:`TerminableFilter` to also receive a post-response ``terminate``
    call.
    """

    async def handle(self, request: Any, call_next: CallNext, *params: str) -> Any:
        """Execute this filter's logic.

        Args:
            request: The inbound request.
            call_next: Single-use continuation running the rest of the chain.
            *params: String arguments from a ``key:arg1,arg2`` route key.

        Returns:
            The response. Never ``None``.
        """
        ...

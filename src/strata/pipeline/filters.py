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
"""Filter base classes and the registration-time binding record.

Two explicit variants exist: :class:`BaseFilter` (forward only) and
:class:`TerminableFilter` (forward plus a post-response ``terminate`` hook).
The variant is decided once, when a filter is bound, by a nominal
``isinstance`` check against :class:`TerminableFilter`. A class that does not
inherit from it can opt in with ``TerminableFilter.register(cls)``.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any

from strata.pipeline.ports.filter import CallNext


class BaseFilter(abc.ABC):
    """Abstract base class for forward-only filters.

    Attributes:
        name: Label used in logs and for bare (unkeyed) bindings. Defaults to
            the class name.
    """

    name: str = ""

    @abc.abstractmethod
    async def handle(self, request: Any, call_next: CallNext, *params: str) -> Any:
        """Execute the filter logic. Call ``await call_next(request)`` at most once."""
        ...


class TerminableFilter(BaseFilter):
    """Filter that also receives a call after the response was delivered."""

    @abc.abstractmethod
    def terminate(self, request: Any, response: Any) -> Any:
        """Post-response hook. May be a coroutine function.

        *response* is ``None`` when the request was cancelled or faulted
        without a failure response.
        """
        ...


def filter_label(obj: Any) -> str:
    """Return the display name of a filter instance."""
    return getattr(obj, "name", "") or type(obj).__name__


@dataclass(frozen=True, slots=True)
class FilterBinding:
    """A filter as it sits in a resolved chain.

    Attributes:
        key: Registry key (or label, for global and bare filters).
        filter: The filter instance.
        params: Arguments parsed from a ``key:arg1,arg2`` route key.
        terminable: Whether ``terminate`` is dispatched for this filter.
    """

    key: str
    filter: Any
    params: tuple[str, ...] = ()
    terminable: bool = False

    @classmethod
    def of(cls, filter: Any, key: str | None = None, params: tuple[str, ...] = ()) -> FilterBinding:
        """Bind *filter*, deciding its termination capability once."""
        return cls(
            key=key or filter_label(filter),
            filter=filter,
            params=params,
            terminable=isinstance(filter, TerminableFilter),
        )

    def with_params(self, params: tuple[str, ...]) -> FilterBinding:
        return FilterBinding(self.key, self.filter, params, self.terminable)

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
"""Filter registry — global filters, keyed filters and groups.

The registry has a two-phase lifecycle: it is mutable while the application
bootstraps and becomes a read-only snapshot after :meth:`FilterRegistry.freeze`.
Once frozen it is safe to share between concurrently executing requests.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

import structlog

from strata.kernel.exceptions import (
    ConfigurationException,
    DuplicateKeyError,
    InvalidFilterError,
    RegistryFrozenError,
    UnknownFilterKeyError,
)
from strata.pipeline.filters import FilterBinding
from strata.pipeline.ports.filter import Filter

logger = structlog.get_logger("strata.pipeline")

PARAMS_SEPARATOR = ":"
PARAM_DELIMITER = ","


def parse_key(key: str) -> tuple[str, tuple[str, ...]]:
    """Split ``"throttle:60,1"`` into ``("throttle", ("60", "1"))``."""
    name, sep, raw = key.partition(PARAMS_SEPARATOR)
    if not sep:
        return key, ()
    return name, tuple(raw.split(PARAM_DELIMITER)) if raw else ()


class FilterRegistry:
    """Maps symbolic keys to filters and separates global from keyed filters.

    Global filters run on every request, outermost first, in registration
    order. Keyed filters and groups are opt-in and referenced by route keys.

    Args:
        strict: Raise :class:`DuplicateKeyError` when a key is registered
            twice instead of replacing the previous binding.
    """

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict
        self._frozen = False
        self._global: list[FilterBinding] | tuple[FilterBinding, ...] = []
        self._keyed: dict[str, FilterBinding] | Mapping[str, FilterBinding] = {}
        self._groups: dict[str, tuple[str, ...]] | Mapping[str, tuple[str, ...]] = {}

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def global_filters(self) -> tuple[FilterBinding, ...]:
        return tuple(self._global)

    @property
    def keys(self) -> tuple[str, ...]:
        """Keyed filter keys, in registration order."""
        return tuple(self._keyed)

    @property
    def groups(self) -> Mapping[str, tuple[str, ...]]:
        return MappingProxyType(dict(self._groups))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_global(self, filter: Any) -> None:
        """Append *filter* to the global list. Duplicates run twice."""
        self._ensure_mutable("register global filter")
        binding = self._bind(filter)
        self._global.append(binding)  # type: ignore[union-attr]
        logger.debug("global_filter_registered", filter=binding.key, position=len(self._global) - 1)

    def register_keyed(self, key: str, filter: Any) -> None:
        """Bind *key* to *filter*; last write wins unless the registry is strict."""
        self._ensure_mutable(f"register filter '{key}'")
        self._check_key(key)
        binding = self._bind(filter, key)
        self._claim(key)
        self._keyed[key] = binding  # type: ignore[index]
        logger.debug("filter_registered", key=key, filter=type(filter).__name__, terminable=binding.terminable)

    def register_group(self, name: str, keys: Iterable[str]) -> None:
        """Bind *name* to an ordered list of keys, expanded in place on resolve."""
        self._ensure_mutable(f"register group '{name}'")
        self._check_key(name)
        self._claim(name)
        self._groups[name] = tuple(keys)  # type: ignore[index]
        logger.debug("filter_group_registered", group=name, keys=list(self._groups[name]))

    def freeze(self) -> FilterRegistry:
        """End the bootstrap phase. Returns ``self`` for chaining."""
        if not self._frozen:
            self._global = tuple(self._global)
            self._keyed = MappingProxyType(dict(self._keyed))
            self._groups = MappingProxyType(dict(self._groups))
            self._frozen = True
            logger.info(
                "filter_registry_frozen",
                global_filters=len(self._global),
                keyed_filters=len(self._keyed),
                groups=len(self._groups),
            )
        return self

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, keys: Iterable[str]) -> tuple[FilterBinding, ...]:
        """Resolve route keys, expanding groups and parsing parameters.

        Raises :class:`UnknownFilterKeyError` for the first unbound key;
        nothing is returned in that case.
        """
        resolved: list[FilterBinding] = []
        for key in keys:
            resolved.extend(self._expand(key, ()))
        return tuple(resolved)

    def resolve_chain(
        self,
        route_keys: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> tuple[FilterBinding, ...]:
        """Global filters (always outermost) followed by the route's filters.

        Route filters whose key is listed in *exclude* are dropped after group
        expansion. Global filters are never excluded.
        """
        excluded = {parse_key(key)[0] for key in exclude}
        route = [binding for binding in self.resolve(route_keys) if binding.key not in excluded]
        return (*self._global, *route)

    def _expand(self, key: str, path: tuple[str, ...]) -> list[FilterBinding]:
        name, params = parse_key(key)

        if name in self._groups:
            if params:
                raise ConfigurationException(
                    f"Group '{name}' does not accept parameters",
                    code="FILTER_GROUP_PARAMS",
                    context={"group": name, "params": list(params)},
                )
            if name in path:
                cycle = " -> ".join((*path, name))
                raise ConfigurationException(
                    f"Filter group cycle: {cycle}",
                    code="FILTER_GROUP_CYCLE",
                    context={"cycle": [*path, name]},
                )
            expanded: list[FilterBinding] = []
            for member in self._groups[name]:
                expanded.extend(self._expand(member, (*path, name)))
            return expanded

        binding = self._keyed.get(name)
        if binding is None:
            raise UnknownFilterKeyError(name)
        return [binding.with_params(params) if params else binding]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_mutable(self, operation: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(operation)

    @staticmethod
    def _check_key(key: str) -> None:
        if not key or PARAMS_SEPARATOR in key:
            raise ConfigurationException(
                f"Invalid filter key '{key}'",
                code="FILTER_INVALID_KEY",
                context={"key": key},
            )

    @staticmethod
    def _bind(filter: Any, key: str | None = None) -> FilterBinding:
        if isinstance(filter, type) or not isinstance(filter, Filter):
            raise InvalidFilterError(filter)
        if not inspect.iscoroutinefunction(filter.handle):
            raise InvalidFilterError(filter)
        return FilterBinding.of(filter, key)

    def _claim(self, key: str) -> None:
        """Release *key* from any previous binding, honouring strict mode."""
        if key not in self._keyed and key not in self._groups:
            return
        if self._strict:
            raise DuplicateKeyError(key)
        logger.warning("filter_key_overwritten", key=key)
        self._keyed.pop(key, None)  # type: ignore[union-attr]
        self._groups.pop(key, None)  # type: ignore[union-attr]

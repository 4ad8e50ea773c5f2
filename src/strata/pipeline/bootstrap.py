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
"""Build a frozen filter registry from configuration.

Example ``strata.yaml``::

    strata:
      pipeline:
        strict_keys: true
        global_filters:
          - myapp.filters:TransactionIdFilter
        filters:
          auth: myapp.filters:AuthFilter
          throttle: myapp.filters:ThrottleFilter
        groups:
          api: [auth, "throttle:60,1"]
"""

from __future__ import annotations

import importlib
from typing import Any

from strata.core.config import Config
from strata.kernel.exceptions import ConfigurationException
from strata.pipeline.properties import PipelineProperties
from strata.pipeline.registry import FilterRegistry


def load_properties(config: Config) -> PipelineProperties:
    try:
        return config.bind(PipelineProperties)
    except ValueError as exc:
        raise ConfigurationException(str(exc), code="PIPELINE_PROPERTIES_INVALID") from exc


def import_object(path: str) -> Any:
    """Import ``package.module:attr`` or ``package.module.attr``."""
    if ":" in path:
        module_name, _, attr_path = path.partition(":")
    else:
        module_name, _, attr_path = path.rpartition(".")
    if not module_name or not attr_path:
        raise ConfigurationException(
            f"Invalid import path '{path}'", code="FILTER_IMPORT_PATH", context={"path": path}
        )

    try:
        obj: Any = importlib.import_module(module_name)
        for attr in attr_path.split("."):
            obj = getattr(obj, attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationException(
            f"Cannot import filter '{path}': {exc}", code="FILTER_IMPORT_FAILED", context={"path": path}
        ) from exc
    return obj


def instantiate_filter(path: str) -> Any:
    """Import *path*; classes are instantiated with no arguments."""
    obj = import_object(path)
    return obj() if isinstance(obj, type) else obj


def registry_from_properties(properties: PipelineProperties, freeze: bool = True) -> FilterRegistry:
    registry = FilterRegistry(strict=properties.strict_keys)
    for path in properties.global_filters:
        registry.register_global(instantiate_filter(path))
    for key, path in properties.filters.items():
        registry.register_keyed(key, instantiate_filter(path))
    for name, keys in properties.groups.items():
        registry.register_group(name, keys)
    return registry.freeze() if freeze else registry


def registry_from_config(config: Config, freeze: bool = True) -> FilterRegistry:
    return registry_from_properties(load_properties(config), freeze=freeze)

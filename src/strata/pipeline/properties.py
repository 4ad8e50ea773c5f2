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
"""Pipeline configuration properties (``strata.pipeline.*``)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from strata.core.config import config_properties


@config_properties(prefix="strata.pipeline")
class PipelineProperties(BaseModel):
    """Bound from the ``strata.pipeline`` section.

    Filter references are dotted import paths (``package.module:attr`` or
    ``package.module.attr``). Classes are instantiated with no arguments.
    """

    strict_keys: bool = False
    termination: Literal["inline", "background"] = "inline"
    global_filters: list[str] = Field(default_factory=list)
    filters: dict[str, str] = Field(default_factory=dict)
    groups: dict[str, list[str]] = Field(default_factory=dict)

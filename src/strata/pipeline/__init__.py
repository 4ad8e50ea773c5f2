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
"""Strata Pipeline — filter registry, chain builder, executor and termination."""

from strata.pipeline.builder import ComposedHandler, PipelineBuilder
from strata.pipeline.continuation import Continuation, ExecutionTrace
from strata.pipeline.executor import ExecutionResult, PipelineExecutor
from strata.pipeline.filters import BaseFilter, FilterBinding, TerminableFilter
from strata.pipeline.kernel import PipelineKernel
from strata.pipeline.ports.filter import CallNext, Filter, Handler
from strata.pipeline.properties import PipelineProperties
from strata.pipeline.registry import FilterRegistry, parse_key
from strata.pipeline.termination import TerminationDispatcher, TerminationFailure, TerminationReport

__all__ = [
    # Ports
    "CallNext",
    "Filter",
    "Handler",
    # Filters
    "BaseFilter",
    "TerminableFilter",
    "FilterBinding",
    # Registry
    "FilterRegistry",
    "parse_key",
    # Execution
    "ComposedHandler",
    "Continuation",
    "ExecutionResult",
    "ExecutionTrace",
    "PipelineBuilder",
    "PipelineExecutor",
    # Termination
    "TerminationDispatcher",
    "TerminationFailure",
    "TerminationReport",
    # Facade
    "PipelineKernel",
    "PipelineProperties",
]

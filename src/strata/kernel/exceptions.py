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
"""Strata exception hierarchy.

Three families share the :class:`StrataException` root:

* configuration errors, raised while filters are registered or a chain is
  resolved, before any request executes;
* contract violations, raised while a chain executes when a filter breaks the
  ``call_next`` discipline;
* :class:`PipelineFault`, the single error the executor surfaces to its host.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

# =============================================================================
# Base Exception
# =============================================================================


class StrataException(Exception):
    """Base exception for all Strata errors.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "FILTER_UNKNOWN_KEY").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationException(StrataException):
    """Registry or chain setup is invalid. Never retried automatically."""


class UnknownFilterKeyError(ConfigurationException):
    """A route referenced a filter key that is not bound in the registry."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"No filter registered under key '{key}'",
            code="FILTER_UNKNOWN_KEY",
            context={"key": key},
        )


class DuplicateKeyError(ConfigurationException):
    """A filter key was registered twice while strict mode is enabled."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"Filter key '{key}' is already registered",
            code="FILTER_DUPLICATE_KEY",
            context={"key": key},
        )


class RegistryFrozenError(ConfigurationException):
    """Registration was attempted after the registry was frozen for serving."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"Cannot {operation}: filter registry is frozen",
            code="FILTER_REGISTRY_FROZEN",
            context={"operation": operation},
        )


class InvalidFilterError(ConfigurationException):
    """The object offered for registration does not implement ``handle``."""

    def __init__(self, obj: Any) -> None:
        type_name = type(obj).__name__
        super().__init__(
            f"'{type_name}' does not implement the filter contract (async handle(request, call_next))",
            code="FILTER_INVALID",
            context={"type": type_name},
        )


# =============================================================================
# Contract Violations
# =============================================================================


class ContractViolation(StrataException):
    """A filter broke the ``call_next`` contract. Indicates an authoring bug."""


class ContinuationReusedError(ContractViolation):
    """``call_next`` was invoked more than once by the same filter."""

    def __init__(self, owner: str) -> None:
        self.owner = owner
        super().__init__(
            f"Filter '{owner}' invoked call_next more than once",
            code="CONTINUATION_REUSED",
            context={"filter": owner},
        )


class MissingResponseError(ContractViolation):
    """A filter or the terminal handler completed without producing a response."""

    def __init__(self, owner: str, called_next: bool | None = None) -> None:
        self.owner = owner
        self.called_next = called_next
        if called_next is None:
            detail = ""
        else:
            detail = " after calling call_next" if called_next else " without calling call_next"
        super().__init__(
            f"'{owner}' returned no response{detail}",
            code="RESPONSE_MISSING",
            context={"filter": owner, "called_next": called_next},
        )


# =============================================================================
# Execution Faults
# =============================================================================


class PipelineFault(StrataException):
    """A fault escaped the outermost filter of a chain.

    The original exception is available both as ``cause`` and as
    ``__cause__``. ``executed_filters`` holds the bindings whose ``handle``
    was entered before the fault, in entry order, so the host can still run
    their termination hooks.
    """

    def __init__(
        self,
        cause: BaseException,
        executed_filters: Sequence[Any] = (),
        contract_violation: bool = False,
    ) -> None:
        self.cause = cause
        self.executed_filters = tuple(executed_filters)
        self.contract_violation = contract_violation
        kind = "contract violation" if contract_violation else "unhandled fault"
        super().__init__(
            f"Pipeline {kind}: {type(cause).__name__}: {cause}",
            code="PIPELINE_CONTRACT_VIOLATION" if contract_violation else "PIPELINE_FAULT",
            context={"cause_type": type(cause).__name__},
        )
        self.__cause__ = cause

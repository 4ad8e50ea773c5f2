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
"""Shared Rich console for CLI output."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from strata.pipeline.filters import FilterBinding

STRATA_THEME = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "strata": "bold magenta",
    "dim": "dim",
})

console = Console(theme=STRATA_THEME)


def print_banner() -> None:
    """Print the Strata banner line."""
    from strata import __version__

    console.print(f"[strata]strata[/strata] [dim]:: filter pipelines :: (v{__version__})[/dim]")
    console.print("  [dim]Copyright 2026 Firefly Software Solutions Inc. | Apache 2.0 License[/dim]\n")


def print_chain_table(chain: Sequence[FilterBinding], global_count: int) -> None:
    """Print a resolved chain, outermost filter first."""
    table = Table(title="[strata]Filter chain[/strata] [dim](outermost first)[/dim]", border_style="dim")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column("Filter")
    table.add_column("Params", style="info")
    table.add_column("Scope", style="dim")
    table.add_column("Terminate")

    for position, binding in enumerate(chain):
        table.add_row(
            str(position),
            binding.key,
            type(binding.filter).__qualname__,
            ", ".join(binding.params),
            "global" if position < global_count else "route",
            "[success]yes[/success]" if binding.terminable else "[dim]no[/dim]",
        )

    console.print(table)

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
"""'strata chain' and 'strata check' — inspect configured pipelines."""

from __future__ import annotations

import click
from rich.markup import escape

from strata.cli.console import console, print_chain_table
from strata.core.config import Config
from strata.kernel.exceptions import StrataException
from strata.logging.port import LoggingPort
from strata.logging.structlog_adapter import StructlogAdapter
from strata.pipeline.bootstrap import registry_from_config
from strata.pipeline.registry import FilterRegistry

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default="strata.yaml",
    show_default=True,
    help="YAML or TOML configuration file.",
)
_profile_option = click.option("--profile", "profiles", multiple=True, help="Active profile overlay (repeatable).")
_verbose_option = click.option("--verbose", "-v", is_flag=True, help="Log registration and resolution details.")


def _load_registry(config_path: str, profiles: tuple[str, ...], verbose: bool) -> FilterRegistry:
    config = Config.from_file(config_path, active_profiles=list(profiles))
    adapter: LoggingPort = StructlogAdapter()
    adapter.configure(config)
    adapter.set_level("strata", "DEBUG" if verbose else "WARNING")
    return registry_from_config(config)


@click.command()
@click.argument("route_keys", nargs=-1)
@click.option("--exclude", "-x", multiple=True, help="Route filter key to exclude (repeatable).")
@_config_option
@_profile_option
@_verbose_option
def chain_command(
    route_keys: tuple[str, ...],
    exclude: tuple[str, ...],
    config_path: str,
    profiles: tuple[str, ...],
    verbose: bool,
) -> None:
    """Show the filter chain a route with ROUTE_KEYS would run."""
    try:
        registry = _load_registry(config_path, profiles, verbose)
        chain = registry.resolve_chain(route_keys, exclude)
    except StrataException as exc:
        console.print(f"[error]✗[/error] {escape(str(exc))}")
        raise SystemExit(1) from None

    if not chain:
        console.print("[warning]![/warning] Empty chain: requests go straight to the terminal handler")
        return
    print_chain_table(chain, global_count=len(registry.global_filters))


@click.command()
@_config_option
@_profile_option
@_verbose_option
def check_command(config_path: str, profiles: tuple[str, ...], verbose: bool) -> None:
    """Validate configured filters and groups."""
    try:
        registry = _load_registry(config_path, profiles, verbose)
    except StrataException as exc:
        console.print(f"[error]✗[/error] {escape(str(exc))}")
        raise SystemExit(1) from None

    console.print(f"  [success]✓[/success] {len(registry.global_filters)} global filter(s)")
    console.print(f"  [success]✓[/success] {len(registry.keys)} keyed filter(s)")

    all_ok = True
    for name in registry.groups:
        try:
            members = registry.resolve([name])
        except StrataException as exc:
            console.print(f"  [error]✗[/error] group {name}: {escape(str(exc))}")
            all_ok = False
            continue
        keys = ", ".join(binding.key for binding in members)
        console.print(f"  [success]✓[/success] group {name} [dim]→ {keys}[/dim]")

    if not all_ok:
        raise SystemExit(1)
    console.print("\n[success]Pipeline configuration OK[/success]")

#!/usr/bin/env python3
"""
Camper Command Line Interface
=============================

Diagnostics and quick queries against a Forest server.

Usage:
    camper doctor          Check configuration and connectivity
    camper stats           Show graph statistics
    camper nodes           List nodes
    camper watch           Print live push events
    camper config          Show resolved configuration
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Optional, List

from camper_core.client import ForestClient
from camper_core.config import CamperConfig, config_to_dict, load_config
from camper_core.events import EventStreamOptions
from camper_core.exceptions import ForestError
from camper_core.logging_utils import configure_logging, mask_secrets
from camper_core.types import DomainEvent, EventStreamStatus, ListNodesParams
from camper_core.version import __version__

# =============================================================================
# ANSI Colors
# =============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[0;34m'
    CYAN = '\033[0;36m'
    MAGENTA = '\033[0;35m'
    BOLD = '\033[1m'
    NC = '\033[0m'  # No Color

    @classmethod
    def disable(cls):
        """Disable colors (for non-TTY output)."""
        cls.RED = cls.GREEN = cls.YELLOW = cls.BLUE = ''
        cls.CYAN = cls.MAGENTA = cls.BOLD = cls.NC = ''


def print_ok(msg: str) -> None:
    print(f"{Colors.GREEN}✓{Colors.NC} {msg}")


def print_warn(msg: str) -> None:
    print(f"{Colors.YELLOW}⚠{Colors.NC} {msg}")


def print_error(msg: str) -> None:
    print(f"{Colors.RED}✗{Colors.NC} {msg}")


def print_info(msg: str) -> None:
    print(f"{Colors.BLUE}ℹ{Colors.NC} {msg}")


def print_header(msg: str) -> None:
    print(f"\n{Colors.BOLD}{Colors.CYAN}{msg}{Colors.NC}")


def _show(value) -> str:
    return "-" if value is None else str(value)


# =============================================================================
# Helpers
# =============================================================================

def build_client(config: CamperConfig) -> ForestClient:
    """Client for CLI commands (tests replace this)."""
    return ForestClient(config.client)


def _resolve_config(args: argparse.Namespace) -> CamperConfig:
    config = load_config(Path(args.config) if args.config else None, base_url=args.url)
    if args.debug:
        config.logging.debug_requests = True
        config.logging.level = "DEBUG"
    return config


def format_event(event: DomainEvent) -> str:
    """One-line rendering of a push event."""
    details = []
    for key in ("nodeId", "id", "edgeId", "old", "new"):
        value = event.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            details.append(f"{key}={value}")
    node = event.get("node")
    if isinstance(node, dict) and node.get("title"):
        details.append(f"title={node['title']!r}")
    suffix = f" {' '.join(details)}" if details else ""
    return f"{Colors.MAGENTA}{event.type}{Colors.NC}{suffix}"


# =============================================================================
# Commands
# =============================================================================

async def _doctor(config: CamperConfig) -> int:
    client_config = config.client
    print_header("Camper Doctor - Connection Diagnostics")
    print(f"  Base URL:      {mask_secrets(client_config.base_url)}")
    print(f"  API prefix:    {client_config.api_prefix}")
    print(f"  Timeout:       {client_config.timeout_ms:g}ms")
    print(f"  Config file:   {config.source or '(defaults)'}")

    async with build_client(config) as client:
        print(f"  Full endpoint: {mask_secrets(client.executor.build_url(''))}")

        print_header("Health")
        start = time.monotonic()
        try:
            health = await client.get_health()
        except ForestError as e:
            elapsed = (time.monotonic() - start) * 1000
            print_error(f"Health check failed after {elapsed:.0f}ms: {e}")
            print_header("Troubleshooting")
            print_info("1. Ensure the Forest server is running")
            print_info(f"2. Test manually: curl {client.executor.build_url('health')}")
            print_info("3. Check the CAMPER_FOREST_URL environment variable")
            print_info("4. Check for firewall/network issues")
            return 1

        elapsed = (time.monotonic() - start) * 1000
        (print_ok if health.ok else print_warn)(f"Health responded in {elapsed:.0f}ms")
        print(f"  Status:   {_show(health.status)}")
        print(f"  Version:  {_show(health.version)}")
        print(f"  Database: {_show(health.database_path)}")
        print(f"  Uptime:   {_show(health.uptime_seconds)}s")

        print_header("Stats")
        try:
            stats = await client.get_stats()
        except ForestError as e:
            print_error(f"Stats request failed: {e}")
            return 1
        print_ok("Stats retrieved")
        print(f"  Nodes:           {_show(stats.nodes)}")
        print(f"  Edges:           {_show(stats.edges)}")
        print(f"  Tags:            {_show(stats.tags)}")
        print(f"  Suggested edges: {_show(stats.suggested_edges)}")

    print_header("Summary")
    if health.ok:
        print_ok("All checks passed. Camper can connect.")
        return 0
    print_warn(f"Server reports status '{health.status}'")
    return 1


def cmd_doctor(args: argparse.Namespace) -> int:
    """Run connection diagnostics."""
    return asyncio.run(_doctor(args.resolved_config))


async def _stats(config: CamperConfig, as_json: bool) -> int:
    async with build_client(config) as client:
        try:
            stats = await client.get_stats()
        except ForestError as e:
            print_error(f"Failed to fetch stats: {e}")
            return 1

    if as_json:
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    print_header("Forest Stats")
    print(f"  Nodes:           {_show(stats.nodes)}")
    print(f"  Edges:           {_show(stats.edges)}")
    print(f"  Tags:            {_show(stats.tags)}")
    print(f"  Suggested edges: {_show(stats.suggested_edges)}")

    if stats.recent_nodes:
        print(f"\n{Colors.BOLD}Recent nodes:{Colors.NC}")
        for node in stats.recent_nodes:
            print(f"  {node.id}  {node.title or ''}")
    if stats.top_tags:
        print(f"\n{Colors.BOLD}Top tags:{Colors.NC}")
        for tag in stats.top_tags:
            print(f"  #{tag.name} ({_show(tag.count)})")
    if stats.high_degree_nodes:
        print(f"\n{Colors.BOLD}High-degree nodes:{Colors.NC}")
        for node in stats.high_degree_nodes:
            print(f"  {node.id}  {node.title or ''}  edges={_show(node.edge_count)}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show graph statistics."""
    return asyncio.run(_stats(args.resolved_config, args.json))


async def _nodes(config: CamperConfig, params: ListNodesParams) -> int:
    async with build_client(config) as client:
        try:
            listing = await client.list_nodes(params)
        except ForestError as e:
            print_error(f"Failed to list nodes: {e}")
            return 1

    for node in listing.items:
        tags = " ".join(f"#{tag}" for tag in node.tags)
        print(f"{Colors.CYAN}{node.short_id or node.id}{Colors.NC}  {node.title or '(untitled)'}  {tags}".rstrip())
    total = listing.total if listing.total is not None else len(listing.items)
    print_info(f"Showing {len(listing.items)} of {total} nodes")
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    """List nodes."""
    params = ListNodesParams(
        limit=args.limit,
        offset=args.offset,
        search=args.search,
        tags=args.tag or [],
    )
    return asyncio.run(_nodes(args.resolved_config, params))


async def _watch(config: CamperConfig, count: Optional[int]) -> int:
    done = asyncio.Event()
    seen = 0

    def handle(event: DomainEvent):
        nonlocal seen
        seen += 1
        print(format_event(event), flush=True)
        if count and seen >= count:
            done.set()

    def on_status(status: EventStreamStatus):
        printer = print_ok if status is EventStreamStatus.CONNECTED else print_info
        printer(f"Event stream {status.value}")

    options = EventStreamOptions(
        path=config.events.path,
        protocols=config.events.protocols or None,
        retry_delay_ms=config.events.retry_delay_ms,
        on_status_change=on_status,
        on_error=lambda error: print_warn(f"Event stream error: {error}"),
    )

    async with build_client(config) as client:
        print_info(f"Watching {mask_secrets(client.events_url(options.path))}")
        client.subscribe_to_events(handle, options=options, reconcile=False)
        await done.wait()
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Print live events until interrupted or --count events arrived."""
    try:
        return asyncio.run(_watch(args.resolved_config, args.count))
    except KeyboardInterrupt:
        print()
        return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show resolved configuration."""
    config: CamperConfig = args.resolved_config
    data = config_to_dict(config)
    data["client"]["base_url"] = mask_secrets(data["client"]["base_url"])

    if args.json:
        print(json.dumps(data, indent=2))
        return 0

    print_header("Camper Configuration")
    if config.source:
        print_ok(f"Config file: {config.source}")
    else:
        print_info("No config file found, using defaults and environment")
    data.pop("source")
    print()
    for section, items in data.items():
        print(f"{Colors.BOLD}{section}:{Colors.NC}")
        for key, value in items.items():
            print(f"  {key}: {value}")
        print()
    return 0


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camper",
        description="Camper - Forest knowledge-graph client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  camper doctor                    Check the Forest connection
  camper stats --json              Graph statistics as JSON
  camper nodes --tag python -n 5   First five nodes tagged python
  camper watch --count 10          Print the next ten events
  camper config                    Show resolved configuration
        """
    )
    parser.add_argument("--version", action="version", version=f"camper {__version__}")
    parser.add_argument("-c", "--config", help="Path to camper.yaml")
    parser.add_argument("--url", help="Forest base URL (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Log every Forest request")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # doctor
    sub = subparsers.add_parser("doctor", help="Check configuration and connectivity")
    sub.set_defaults(func=cmd_doctor)

    # stats
    sub = subparsers.add_parser("stats", help="Show graph statistics")
    sub.add_argument("--json", action="store_true", help="Output JSON")
    sub.set_defaults(func=cmd_stats)

    # nodes
    sub = subparsers.add_parser("nodes", help="List nodes")
    sub.add_argument("-s", "--search", help="Full-text search")
    sub.add_argument("-t", "--tag", action="append", help="Filter by tag (repeatable)")
    sub.add_argument("-n", "--limit", type=int, default=20, help="Page size")
    sub.add_argument("--offset", type=int, default=None, help="Page offset")
    sub.set_defaults(func=cmd_nodes)

    # watch
    sub = subparsers.add_parser("watch", help="Print live push events")
    sub.add_argument("--count", type=int, default=None, help="Stop after N events")
    sub.set_defaults(func=cmd_watch)

    # config
    sub = subparsers.add_parser("config", help="Show resolved configuration")
    sub.add_argument("--json", action="store_true", help="Output JSON")
    sub.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    if not sys.stdout.isatty():
        Colors.disable()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    args.resolved_config = _resolve_config(args)
    configure_logging(args.resolved_config.logging)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Craftify Sync - Command Line Interface

Headless front end for the sync engine: run a sync, inspect the published
state, manage favorites and recent searches, submit and track reports, and
clear local or remote data.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import SyncConfig
from .engine import SyncEngine, sync_session
from .errors import SyncError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Craftify recipe catalog sync client")
    parser.add_argument("--config", type=Path, help="JSON config file (CRAFTSYNC_* env vars override)")
    parser.add_argument("--sync", action="store_true", help="Perform a full manual sync")
    parser.add_argument("--status", action="store_true", help="Show sync status")
    parser.add_argument("--search", metavar="TEXT", help="Search recipes by name and record the top hit")
    parser.add_argument("--category", help="Restrict --search to one category")
    parser.add_argument("--favorite", type=int, metavar="RECIPE_ID", help="Toggle a favorite")
    parser.add_argument("--favorites", action="store_true", help="List favorite recipes")
    parser.add_argument(
        "--report",
        nargs=4,
        metavar=("KIND", "RECIPE", "CATEGORY", "DESCRIPTION"),
        help="Submit a report (KIND is missing_recipe or recipe_error)",
    )
    parser.add_argument("--reports", action="store_true", help="List my reports and their status")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the cached catalog")
    parser.add_argument("--clear-all", action="store_true", help="Clear all local and remote user data")
    parser.add_argument("--notifications", choices=["on", "off"], help="Enable or disable report notifications")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def print_status(engine: SyncEngine) -> None:
    state = engine.state
    print("\n=== Sync Status ===")
    print(f"Status: {engine.sync_status}")
    print(f"Connected: {state.is_connected}")
    print(f"Recipes: {len(state.recipes)}")
    print(f"Commands: {len(state.commands)}")
    print(f"Favorites: {len(state.favorites)}")
    print(f"Recent searches: {', '.join(state.recent_searches) or '-'}")
    print(f"Reports: {len(state.reports)}")
    if state.error_message:
        print(f"Error: {state.error_message}")


async def run_commands(engine: SyncEngine, args: argparse.Namespace) -> int:
    exit_code = 0

    if args.sync:
        result = await engine.sync_all()
        print(f"\nSync result: {result.items_processed} processed, {result.items_failed} failed")
        if result.errors:
            print("Errors:")
            for error in result.errors:
                print(f"  - {error}")
            exit_code = 1
    elif any((args.search, args.favorites, args.favorite is not None)):
        # Lookups need a catalog; fetch one if the cache is empty
        if not engine.recipes:
            await engine.load_catalog(manual=True)
        await engine.refresh_user_state()

    if args.search:
        matches = engine.search(args.search, args.category)
        for recipe in matches:
            print(f"{recipe.id:>6}  {recipe.name}  [{recipe.category}]")
        if matches:
            engine.save_recent_search(matches[0])
        else:
            print("No matching recipes")

    if args.favorite is not None:
        added = engine.toggle_favorite(args.favorite)
        print(f"Recipe {args.favorite} {'added to' if added else 'removed from'} favorites")

    if args.favorites:
        for recipe in engine.favorite_recipes:
            print(f"{recipe.id:>6}  {recipe.name}")

    if args.report:
        kind, recipe_name, category, description = args.report
        try:
            report = await engine.submit_report(kind, recipe_name, category, description)
            print(f"Report submitted: {report.record_id}")
        except SyncError as e:
            print(f"Report failed: {e}")
            exit_code = 1

    if args.reports:
        try:
            reports = await engine.list_my_reports(force=True)
        except SyncError as e:
            print(f"Could not fetch reports: {e}")
            exit_code = 1
        else:
            for report in reports:
                print(
                    f"{report.created_at:%Y-%m-%d %H:%M}  {report.status.value:<9} "
                    f"{report.kind.value}: {report.recipe_name}"
                )

    if args.notifications:
        enabled = await engine.set_notifications_enabled(args.notifications == "on")
        print(f"Notifications {'enabled' if enabled else 'disabled'}")

    if args.clear_cache:
        if not await engine.clear_cache():
            exit_code = 1
        print(engine.state.status_message)

    if args.clear_all:
        result = await engine.clear_all_data()
        for step in result.steps:
            print(f"  {step.name}: {'ok' if step.success else step.error}")
        print(engine.state.status_message)
        if not result:
            exit_code = 1

    if args.status:
        print_status(engine)

    return exit_code


async def main(argv: Optional[list[str]] = None) -> int:
    """CLI interface for the sync engine."""
    args = build_parser().parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = SyncConfig.load(args.config)
    async with sync_session(config) as engine:
        return await run_commands(engine, args)


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

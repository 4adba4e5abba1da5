"""CLI entry point for trendi-tools."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
import uuid
from typing import Awaitable, Callable, TypeVar

from trendi_tools.app import EnrichOptions, TrendiApp, run_enrichment
from trendi_tools.config import AppConfig, load_config
from trendi_tools.core.errors import ConfigurationError, TrendiToolsError
from trendi_tools.core.types import RunMode
from trendi_tools.log import setup_logging
from trendi_tools.pipeline.analytics import render_dashboard

T = TypeVar("T")


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {value}")
    return number


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trendi-tools",
        description="Digital tool catalog: search, bookmarks, assistant and enrichment pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    enrich = subparsers.add_parser("enrich", help="Run the batch enrichment pipeline")
    _add_config_args(enrich)
    enrich.add_argument("-d", "--dry-run", action="store_true", help="Fabricate every external call")
    enrich.add_argument("-r", "--resume", action="store_true", help="Skip URLs already completed")
    enrich.add_argument(
        "--retry-failed", "--retry", dest="retry_failed", action="store_true",
        help="Process only previously failed URLs",
    )
    enrich.add_argument("--batch-size", type=_positive_int, help="Override the batch size")
    enrich.add_argument("--csv", dest="csv_path", help="CSV file with a URL column")

    search = subparsers.add_parser("search", help="Search the tool catalog")
    _add_config_args(search)
    search.add_argument("query", nargs="?", default="", help="Search text (empty lists newest)")
    search.add_argument("--category", help="Exact category filter")
    search.add_argument("--cursor", help="Continue cursor from a previous page")
    search.add_argument("--page-size", type=_positive_int, help="Results per page")
    search.add_argument("--user", help="User id for bookmark flags")
    search.add_argument("--json", action="store_true", help="Print the page as JSON")

    chat = subparsers.add_parser("chat", help="Ask the tool assistant")
    _add_config_args(chat)
    chat.add_argument("message", nargs="?", help="Message to send")
    chat.add_argument("--session", help="Session id (a new one is generated if omitted)")
    chat.add_argument("--user", help="User id")
    chat.add_argument("--history", action="store_true", help="Show the session history instead")

    bookmark = subparsers.add_parser("bookmark", help="Manage bookmarks")
    _add_config_args(bookmark)
    bookmark.add_argument("action", choices=["add", "remove", "list"])
    bookmark.add_argument("tool_id", nargs="?", type=int, help="Tool id for add/remove")
    bookmark.add_argument("--user", help="User id")

    popular = subparsers.add_parser("popular", help="Show popular searches")
    _add_config_args(popular)

    seed = subparsers.add_parser("seed", help="Seed the catalog with sample tools")
    _add_config_args(seed)

    fix = subparsers.add_parser("fix-screenshots", help="Repair doubled screenshot prefixes")
    _add_config_args(fix)
    fix.add_argument("--check", action="store_true", help="Only report stored screenshot values")

    check = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = _load(args.config, args.env)

    if args.command == "config-check":
        _check_config(args.config, config)
        return

    setup_logging(config.log_level, config.json_logs)

    match args.command:
        case "enrich":
            sys.exit(_enrich(config, args))
        case "search":
            _run_with_app(config, lambda app: _search(app, args))
        case "chat":
            _run_with_app(config, lambda app: _chat(app, args))
        case "bookmark":
            _run_with_app(config, lambda app: _bookmark(app, args))
        case "popular":
            _run_with_app(config, _popular)
        case "seed":
            _run_with_app(config, _seed)
        case "fix-screenshots":
            _run_with_app(config, lambda app: _fix_screenshots(app, args))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    """Print a configuration summary."""
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Site URL: {config.search.site_url}")
    print(f"  Assistant: {config.assistant.model if config.anthropic else '(no anthropic api_key)'}")
    print(f"  Extraction: {config.extraction.base_url} (key {'set' if config.extraction.api_key else 'missing'})")
    print(f"  Object storage: {config.object_storage.base_url or '(not configured)'}")
    print(f"  Browser: {config.services.browser.browser_type} (headless={config.services.browser.headless})")
    print(f"  Pipeline CSV: {config.pipeline.csv_path} (batch size {config.pipeline.batch_size})")


def _run_with_app(config: AppConfig, command: Callable[[TrendiApp], Awaitable[T]]) -> None:
    async def _async_main() -> None:
        app = TrendiApp(config)
        await app.start()
        try:
            await command(app)
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except TrendiToolsError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _enrich(config: AppConfig, args: argparse.Namespace) -> int:
    if args.retry_failed:
        mode = RunMode.RETRY_FAILED
    elif args.resume:
        mode = RunMode.RESUME
    else:
        mode = RunMode.FRESH
    options = EnrichOptions(
        mode=mode,
        dry_run=args.dry_run,
        batch_size=args.batch_size,
        csv_path=args.csv_path,
    )

    async def _async_main():
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        try:
            loop.add_signal_handler(signal.SIGTERM, task.cancel)  # type: ignore[union-attr]
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass
        return await run_enrichment(config, options)

    try:
        report = asyncio.run(_async_main())
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("Interrupted; progress saved", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1

    print(render_dashboard(report.analytics))
    return 0


async def _search(app: TrendiApp, args: argparse.Namespace) -> None:
    page = await app.search(
        args.query,
        category=args.category,
        cursor=args.cursor,
        page_size=args.page_size,
        user_id=args.user,
    )
    if args.json:
        print(json.dumps({
            "page": [item.to_dict() for item in page.items],
            "is_done": page.is_done,
            "continue_cursor": page.continue_cursor,
        }, indent=2))
        return

    for item in page.items:
        mark = "*" if item.is_bookmarked else " "
        print(f"{mark} [{item.tool.id}] {item.tool.name} - {item.tool.tagline}")
        print(f"      {item.tool.url}  ({item.tool.category or 'uncategorized'})")
    if not page.items:
        print("No tools found.")
    if not page.is_done:
        print(f"\nMore results: --cursor {page.continue_cursor}")


async def _chat(app: TrendiApp, args: argparse.Namespace) -> None:
    assistant = app.assistant()
    if args.history:
        if not args.session:
            raise ConfigurationError("--history requires --session")
        for turn in await assistant.get_chat_history(args.session):
            print(f"> {turn.record.message}")
            print(turn.record.response)
            if turn.recommended_tools:
                print("  Tools: " + ", ".join(t.tool.name for t in turn.recommended_tools))
            print()
        return

    if not args.message:
        raise ConfigurationError("A message is required")
    session_id = args.session or uuid.uuid4().hex
    reply = await assistant.send_message(args.message, session_id, user_id=args.user)
    print(reply.response)
    if reply.recommendations:
        print("\nRecommended tools:")
        for item in reply.recommendations:
            print(f"  - {item.tool.name}: {item.tool.url}")
    print(f"\nSession: {session_id}")


async def _bookmark(app: TrendiApp, args: argparse.Namespace) -> None:
    if args.action == "list":
        tools = await app.aggregator.bookmarked_tools(args.user)
        for item in tools:
            print(f"[{item.tool.id}] {item.tool.name} - {item.tool.url}")
        if not tools:
            print("No bookmarks.")
        return

    if args.tool_id is None:
        raise ConfigurationError(f"bookmark {args.action} requires a tool id")
    if args.action == "add":
        await app.bookmarks.add(args.user, args.tool_id)
        print(f"Bookmarked tool {args.tool_id}")
    else:
        await app.bookmarks.remove(args.user, args.tool_id)
        print(f"Removed bookmark for tool {args.tool_id}")


async def _popular(app: TrendiApp) -> None:
    queries = await app.popular_searches()
    for i, query in enumerate(queries, 1):
        print(f"{i}. {query}")
    if not queries:
        print("No searches recorded yet.")


async def _seed(app: TrendiApp) -> None:
    print(await app.seed())


async def _fix_screenshots(app: TrendiApp, args: argparse.Namespace) -> None:
    if args.check:
        reports = await app.inspect_screenshots()
        for report in reports:
            flag = "MALFORMED" if report.has_double_prefix else "ok"
            print(f"[{report.tool_id}] {report.name}: {report.screenshot} ({flag})")
        print(f"{sum(r.has_double_prefix for r in reports)} of {len(reports)} need fixing")
        return

    fixes = await app.fix_screenshots()
    for fix in fixes:
        print(f"[{fix.tool_id}] {fix.name}: {fix.old_value} -> {fix.new_value}")
    print(f"Fixed {len(fixes)} screenshot(s)")


if __name__ == "__main__":
    main()

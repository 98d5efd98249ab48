#!/usr/bin/env python3
"""Command line interface for the resilient data layer."""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from cache.cache_manager import CacheManager
from cache.database import SQLiteKeyValueStore
from cache.memory_cache import MemoryCache
from cache.models import CacheStrategy, format_bytes
from cache.storage_cache import StorageCache
from cli.output import get_output
from network.api_service import PostsService
from network.classifier import ErrorClassifier
from network.errors import NetworkError, OfflineAndNoCacheError, RetryExhaustedError
from network.http_client import HttpClient
from network.retry import RetryEngine, RetryPolicy
from offline.connectivity import ConnectivityMonitor, http_probe
from offline.manager import OfflineManager
from offline.queue import OfflineQueue
from repository.posts import PostsRepository
from utils.config import Config
from utils.logging_setup import setup_logging


@dataclass
class Runtime:
    """Every long-lived collaborator, constructed once per process."""

    store: SQLiteKeyValueStore
    cache: CacheManager
    http: HttpClient
    engine: RetryEngine
    service: PostsService
    monitor: ConnectivityMonitor
    queue: OfflineQueue
    offline: OfflineManager
    repository: PostsRepository

    async def close(self) -> None:
        await self.offline.stop()
        await self.repository.wait_for_background()
        await self.http.close()


def build_runtime(config: type = Config) -> Runtime:
    """Composition root: wire the cache, network and offline layers."""
    store = SQLiteKeyValueStore(config.db_path())
    cache = CacheManager(
        memory=MemoryCache(
            max_entries=config.MEMORY_CACHE_MAX_ENTRIES,
            max_size_bytes=config.MEMORY_CACHE_MAX_BYTES,
        ),
        storage=StorageCache(store),
    )
    http = HttpClient()
    engine = RetryEngine(classifier=ErrorClassifier(timeout=config.REQUEST_TIMEOUT_SECONDS))
    service = PostsService(
        http,
        engine,
        policy=RetryPolicy(),
        base_url=config.API_BASE_URL,
        timeout=config.REQUEST_TIMEOUT_SECONDS,
    )
    monitor = ConnectivityMonitor(
        http_probe(http, config.CONNECTIVITY_PROBE_URL, config.CONNECTIVITY_PROBE_TIMEOUT_SECONDS),
        interval=config.CONNECTIVITY_INTERVAL_SECONDS,
        store=store,
    )
    queue = OfflineQueue(store)
    offline = OfflineManager(monitor, queue, service.execute_offline_action)
    repository = PostsRepository(cache, service, monitor, queue)
    return Runtime(
        store=store,
        cache=cache,
        http=http,
        engine=engine,
        service=service,
        monitor=monitor,
        queue=queue,
        offline=offline,
        repository=repository,
    )


async def _start(runtime: Runtime, probe: bool = True) -> None:
    """Restore offline mode and take one connectivity reading."""
    await runtime.offline.start(probe=False)
    if probe and not runtime.monitor.offline_mode_enabled:
        await runtime.monitor.check_now()


async def cmd_posts(args, runtime: Runtime) -> int:
    """List posts."""
    out = get_output("resilient.posts")
    strategy = CacheStrategy(args.strategy)

    await _start(runtime)
    try:
        posts = await runtime.repository.load_posts(strategy)
    except (NetworkError, RetryExhaustedError, OfflineAndNoCacheError) as e:
        out.failure(e)
        return 1

    out.header(f"Posts ({len(posts)})")
    for post in posts[: args.limit]:
        out.post_row(post)
    if len(posts) > args.limit:
        out.info(f"... and {len(posts) - args.limit} more")

    await runtime.repository.wait_for_background()
    return 0


async def cmd_create(args, runtime: Runtime) -> int:
    """Create a post, queueing it if offline."""
    out = get_output("resilient.create")

    await _start(runtime)
    try:
        post = await runtime.repository.create_post(args.title, args.body, args.user_id)
    except (NetworkError, RetryExhaustedError) as e:
        out.failure(e)
        return 1

    if post is None:
        out.warning("Offline: post queued for sync when online")
    else:
        out.success(f"Created post {post.id}")
    return 0


async def cmd_cache(args, runtime: Runtime) -> int:
    """Manage the cache."""
    out = get_output("resilient.cache")

    if args.cache_command == "stats":
        out.header("Cache Statistics")
        stats = await runtime.cache.get_stats()
        memory = stats["memory"]
        storage = stats["storage"]
        out.subheader("Memory")
        out.stat("Entries", memory["entries"])
        out.stat("Size", format_bytes(memory["size_bytes"]))
        out.subheader("Storage")
        out.stat("Entries", storage["entries"])
        out.stat("Stored", format_bytes(storage["stored_bytes"]))
        out.stat("Original", format_bytes(storage["original_bytes"]))
        out.stat("Compressed", storage["compressed"])
        out.stat("Expired", storage["expired"])
        db_stats = runtime.store.get_stats()
        out.subheader("Database")
        out.stat("Path", db_stats["db_path"])
        out.stat("Size", f"{db_stats['db_size_mb']} MB")

    elif args.cache_command == "cleanup":
        removed = await runtime.cache.cleanup()
        out.success(f"Removed {removed} expired entries")

    elif args.cache_command == "clear":
        await runtime.cache.clear()
        if args.vacuum:
            runtime.store.vacuum()
        out.success("Cache cleared")

    else:
        out.warning("No cache command specified. Use: stats, cleanup, or clear")
        return 1

    return 0


async def cmd_queue(args, runtime: Runtime) -> int:
    """Inspect or replay the offline queue."""
    out = get_output("resilient.queue")

    if args.queue_command == "list":
        actions = await runtime.queue.pending()
        out.header(f"Offline Queue ({len(actions)} pending)")
        for action in actions:
            out.action_row(action)

    elif args.queue_command == "sync":
        await _start(runtime)
        if runtime.offline.is_offline:
            out.warning("Still offline, nothing synced")
            return 1
        result = await runtime.offline.process_pending()
        out.success(f"Synced {len(result.succeeded)} actions")
        if result.failed:
            out.warning(f"{len(result.failed)} actions failed and stay queued")

    elif args.queue_command == "clear":
        await runtime.queue.clear()
        out.success("Offline queue cleared")

    else:
        out.warning("No queue command specified. Use: list, sync, or clear")
        return 1

    return 0


async def cmd_offline(args, runtime: Runtime) -> int:
    """Toggle or show offline mode."""
    out = get_output("resilient.offline")

    if args.offline_command == "on":
        await _start(runtime, probe=False)
        await runtime.offline.enable_offline_mode()
        out.success("Offline mode enabled")

    elif args.offline_command == "off":
        await _start(runtime, probe=False)
        await runtime.monitor.check_now()
        result = await runtime.offline.disable_offline_mode()
        out.success("Offline mode disabled")
        if result.succeeded:
            out.info(f"Synced {len(result.succeeded)} queued actions")

    elif args.offline_command == "status":
        await _start(runtime)
        out.header("Connectivity")
        out.stat("Probe", runtime.monitor.state.value)
        out.flag("Offline mode", runtime.monitor.offline_mode_enabled)
        out.stat("Effectively offline", runtime.monitor.is_effectively_offline())
        out.stat("Pending actions", await runtime.offline.pending_count())

    else:
        out.warning("No offline command specified. Use: on, off, or status")
        return 1

    return 0


async def cmd_config(args, runtime: Runtime) -> int:
    out = get_output("resilient.config")
    out.header("Configuration")
    for section, value in Config.get_summary().items():
        if isinstance(value, dict):
            out.subheader(section)
            out.stats(value)
        else:
            out.stat(section, value, indent=0)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="resilient",
        description="Resilient data layer - cached, offline-capable API access",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  resilient posts                          # Cached posts, refreshed in background
  resilient posts --strategy network_first
  resilient create --title "Hi" --body "..." --user-id 1
  resilient offline on                     # Force offline mode
  resilient queue list                     # Show queued mutations
  resilient offline off                    # Go online and replay the queue
  resilient cache stats
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # posts command
    posts_parser = subparsers.add_parser("posts", help="List posts")
    posts_parser.add_argument(
        "--strategy",
        choices=[s.value for s in CacheStrategy],
        default=CacheStrategy.CACHE_FIRST.value,
        help="Cache strategy (default: cache_first)",
    )
    posts_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=20,
        help="Number of posts to show (default: 20)",
    )

    # create command
    create_parser_ = subparsers.add_parser("create", help="Create a post")
    create_parser_.add_argument("--title", required=True, help="Post title")
    create_parser_.add_argument("--body", required=True, help="Post body")
    create_parser_.add_argument("--user-id", type=int, default=1, help="Author id (default: 1)")

    # cache command
    cache_parser = subparsers.add_parser("cache", help="Manage the local cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", help="Cache commands")
    cache_subparsers.add_parser("stats", help="Show cache statistics")
    cache_subparsers.add_parser("cleanup", help="Remove expired entries")
    cache_clear_parser = cache_subparsers.add_parser("clear", help="Clear all cache entries")
    cache_clear_parser.add_argument(
        "--vacuum",
        action="store_true",
        help="Also optimize database storage",
    )

    # queue command
    queue_parser = subparsers.add_parser("queue", help="Manage the offline queue")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", help="Queue commands")
    queue_subparsers.add_parser("list", help="List pending actions")
    queue_subparsers.add_parser("sync", help="Replay pending actions now")
    queue_subparsers.add_parser("clear", help="Drop all pending actions")

    # offline command
    offline_parser = subparsers.add_parser("offline", help="Offline mode")
    offline_subparsers = offline_parser.add_subparsers(dest="offline_command", help="Offline commands")
    offline_subparsers.add_parser("on", help="Enable offline mode")
    offline_subparsers.add_parser("off", help="Disable offline mode and sync")
    offline_subparsers.add_parser("status", help="Show connectivity status")

    # config command
    subparsers.add_parser("config", help="Show configuration")

    return parser


COMMANDS = {
    "posts": cmd_posts,
    "create": cmd_create,
    "cache": cmd_cache,
    "queue": cmd_queue,
    "offline": cmd_offline,
    "config": cmd_config,
}


async def async_main(args, runtime: Optional[Runtime] = None) -> int:
    """Async main entry point."""
    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.")
        return 1

    runtime = runtime or build_runtime()
    try:
        return await handler(args, runtime)
    finally:
        await runtime.close()


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    Config.ensure_directories()
    setup_logging(
        log_dir=Config.LOG_DIR,
        verbose=args.verbose or Config.DEBUG,
        console_level=Config.LOG_LEVEL,
    )
    return asyncio.run(async_main(args))


if __name__ == "__main__":
    sys.exit(main())

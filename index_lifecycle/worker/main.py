"""Lifecycle worker entry point.

This module provides the scheduler that periodically evaluates every
registered stream and applies the resulting lifecycle actions. It can run
as a standalone service or be imported for testing.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

from index_lifecycle.backends import DryRunBackend, ElasticsearchBackend
from index_lifecycle.config import Settings, get_settings
from index_lifecycle.observability.logging import get_logger, setup_logging
from index_lifecycle.observability.metrics import get_metrics_manager
from index_lifecycle.retention.manager import IndexBackend, IndexLifecycleManager
from index_lifecycle.retention.store import PolicyStore

logger = get_logger(__name__)


class LifecycleScheduler:
    """Scheduler running lifecycle cycles on a fixed interval.

    Example:
        >>> scheduler = LifecycleScheduler(manager, interval_seconds=300)
        >>> await scheduler.start()
        >>> # Run until stopped
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        manager: IndexLifecycleManager,
        interval_seconds: float = 300.0,
        sync_policies_on_start: bool = True,
    ) -> None:
        """Initialize the scheduler.

        Args:
            manager: Lifecycle manager to drive
            interval_seconds: Seconds between lifecycle cycles
            sync_policies_on_start: Install ILM policies on the backend at startup
        """
        self.manager = manager
        self.interval_seconds = interval_seconds
        self.sync_policies_on_start = sync_policies_on_start
        self.cycles_run = 0
        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> list[dict[str, Any]]:
        """Run one lifecycle cycle over every stream.

        Returns:
            Per-stream cycle summaries
        """
        summaries = await self.manager.run_all()
        self.cycles_run += 1
        logger.info(
            "lifecycle_pass_completed",
            cycle=self.cycles_run,
            streams=len(summaries),
            errors=sum(len(s["errors"]) for s in summaries),
        )
        return summaries

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self._running:
            logger.warning("scheduler_already_running")
            return

        self._running = True
        self._shutdown_event.clear()
        logger.info("scheduler_started", interval_seconds=self.interval_seconds)

        if self.sync_policies_on_start:
            results = await self.manager.sync_policies()
            logger.info("policies_synced", results=results)

        try:
            await self._loop()
        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        logger.info("stopping_scheduler")
        self._running = False
        self._shutdown_event.set()
        logger.info("scheduler_stopped", cycles_run=self.cycles_run)

    async def _loop(self) -> None:
        """Main scheduling loop."""
        while self._running and not self._shutdown_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error("error_in_lifecycle_pass", error=str(e))

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
            except TimeoutError:
                continue

    def signal_handler(self, sig: int) -> None:
        """Handle shutdown signals.

        Args:
            sig: Signal number
        """
        logger.info("received_shutdown_signal", signal=sig)
        self._shutdown_event.set()


def build_backend(settings: Settings) -> IndexBackend:
    """Create the index backend selected by the settings.

    Args:
        settings: Application settings

    Returns:
        Elasticsearch backend when a URL is configured, dry-run backend otherwise
    """
    es = settings.elasticsearch
    if es.url:
        if es.ilm_actions:
            logger.warning("ilm_actions_enabled", detail="ILM and the worker both act on these indices")
        return ElasticsearchBackend(
            url=es.url,
            username=es.username,
            password=es.password,
            verify_certs=es.verify_certs,
            timeout=es.timeout,
            index_prefix=es.index_prefix,
            ilm_actions=es.ilm_actions,
        )
    logger.warning("elasticsearch_url_not_configured", backend="dry_run")
    return DryRunBackend()


def build_manager(settings: Settings, backend: IndexBackend) -> IndexLifecycleManager:
    """Create a store populated with the configured policies and its manager.

    The manager refreshes records from the backend before every cycle, so
    the worker acts on the indices that actually exist.

    Args:
        settings: Application settings
        backend: Index backend

    Returns:
        Lifecycle manager
    """
    metrics = get_metrics_manager() if settings.observability.metrics_enabled else None
    store = PolicyStore(metrics=metrics)
    for policy in settings.policy_yaml.load_policies():
        store.register_policy(policy)
    return IndexLifecycleManager(
        store,
        backend=backend,
        metrics=metrics,
        refresh_from_backend=True,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Index Lifecycle Worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single lifecycle pass and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between lifecycle passes",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the retention policy YAML file",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the lifecycle worker.

    Returns:
        Process exit code
    """
    args = parse_args(argv)
    settings = get_settings()
    if args.config:
        settings.policy_yaml.config_path = args.config

    setup_logging(
        json_format=settings.observability.log_format == "json",
        log_level=settings.observability.log_level,
    )

    backend = build_backend(settings)
    manager = build_manager(settings, backend)
    scheduler = LifecycleScheduler(
        manager,
        interval_seconds=args.interval or settings.scheduler.interval_seconds,
        sync_policies_on_start=settings.scheduler.sync_policies_on_start,
    )

    try:
        if args.once:
            summaries = await scheduler.run_once()
            return 1 if any(s["errors"] for s in summaries) else 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.signal_handler, sig)

        await scheduler.start()
        return 0
    finally:
        await backend.close()


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

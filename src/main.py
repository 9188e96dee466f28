"""
Marketplace Lifecycle Service - Entry Point

Wires the state machine, progression scheduler, payment reconciliation and
resale marketplace together, recovers progression chains left by a previous
run, and keeps the SimPy environment in step with wall-clock time in a
background thread until the process is signalled to stop.
"""

import logging
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

import simpy
from prometheus_client import start_http_server

from app_logging import setup_logging
from core.clock import SystemClock
from core.correlation import set_instance_id
from db.database import init_database
from lifecycle import LifecycleStateMachine
from metrics import REGISTRY
from notifications import (
    LoggingNotificationProvider,
    NotificationDispatch,
    NotificationProvider,
    WebhookNotificationProvider,
)
from payments import HttpPaymentGateway, PaymentReconciler
from pricing import PricingConfig
from progression import ProgressionRunner, ProgressionScheduler
from resale import ResaleMarketplace
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class LifecycleService:
    """Owns every long-lived component of one service instance."""

    def __init__(self, settings: Settings, device_tokens: dict[str, str] | None = None) -> None:
        self.settings = settings
        self.env = simpy.Environment()
        self.clock = SystemClock()
        self.session_factory = init_database(
            settings.database.path, settings.database.busy_timeout_seconds
        )

        self._device_tokens = device_tokens if device_tokens is not None else {}
        self.notifications: NotificationDispatch | None = None
        if settings.notifications.enabled:
            self.notifications = NotificationDispatch(
                self.create_notification_provider(settings),
                self._device_tokens.get,
                executor=ThreadPoolExecutor(
                    max_workers=settings.notifications.max_workers,
                    thread_name_prefix="notify",
                ),
            )

        self.state_machine = LifecycleStateMachine(
            self.session_factory,
            clock=self.clock,
            settings=settings.lifecycle,
            pricing=PricingConfig.from_settings(settings.pricing),
            notifications=self.notifications,
        )
        self.scheduler = ProgressionScheduler(
            self.env,
            self.state_machine,
            self.session_factory,
            settings=settings.progression,
            clock=self.clock,
        )
        self.state_machine.scheduler = self.scheduler

        self.gateway = HttpPaymentGateway.from_settings(settings.payment)
        self.reconciler = PaymentReconciler(
            self.state_machine,
            self.gateway,
            key_secret=settings.payment.key_secret,
            currency=settings.payment.currency,
        )
        self.marketplace = ResaleMarketplace(
            self.state_machine, self.reconciler, settings=settings.resale, clock=self.clock
        )
        self.runner = ProgressionRunner(
            self.env, self.scheduler.lock, tick_seconds=settings.progression.tick_seconds
        )

    @staticmethod
    def create_notification_provider(settings: Settings) -> NotificationProvider:
        if settings.notifications.webhook_url:
            return WebhookNotificationProvider(
                settings.notifications.webhook_url,
                timeout=settings.notifications.timeout_seconds,
            )
        logger.warning("No notification webhook configured, logging notifications instead")
        return LoggingNotificationProvider()

    def start(self) -> None:
        """Recover chains, start the resale sweeper and the progression loop."""
        with self.scheduler.lock:
            self.scheduler.recover()
            self.marketplace.start_sweeper(self.env, self.settings.resale.sweep_interval_seconds)
        self.runner.start()

    def stop(self) -> None:
        self.runner.stop()
        if self.notifications is not None:
            self.notifications.close()
        self.gateway.close()


def main() -> None:
    settings = get_settings()
    setup_logging(
        level=settings.logging.level,
        json_output=settings.logging.format == "json",
        environment=settings.logging.environment,
    )
    set_instance_id(settings.progression.instance_id)

    logger.info("Starting marketplace lifecycle service...")
    service = LifecycleService(settings)
    logger.info(f"Database ready at {settings.database.path}")

    if settings.metrics.enabled:
        start_http_server(settings.metrics.port, registry=REGISTRY)
        logger.info(f"Metrics exposed on port {settings.metrics.port}")

    service.start()

    stop_event = threading.Event()

    # Handle shutdown signals
    def shutdown_handler(signum: int, frame: object) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    stop_event.wait()
    service.stop()
    sys.exit(0)


if __name__ == "__main__":
    main()

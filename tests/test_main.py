import httpx
import pytest

from lifecycle import EntityKind
from main import LifecycleService
from notifications import LoggingNotificationProvider, WebhookNotificationProvider
from settings import DatabaseSettings, NotificationSettings, Settings
from tests.factories import make_order_request


@pytest.fixture
def settings(temp_sqlite_db):
    return Settings(database=DatabaseSettings(path=str(temp_sqlite_db)))


@pytest.mark.unit
class TestLifecycleService:
    def test_wires_components(self, settings):
        service = LifecycleService(settings)
        try:
            assert service.state_machine.scheduler is service.scheduler
            assert service.notifications is not None
            assert service.gateway.base_url == "https://api.razorpay.com"
            assert service.reconciler.currency == "INR"
        finally:
            service.stop()

    def test_logging_provider_without_webhook(self, settings):
        provider = LifecycleService.create_notification_provider(settings)
        assert isinstance(provider, LoggingNotificationProvider)

    def test_webhook_provider_when_configured(self, temp_sqlite_db):
        settings = Settings(
            database=DatabaseSettings(path=str(temp_sqlite_db)),
            notifications=NotificationSettings(webhook_url="https://push.test/send"),
        )
        provider = LifecycleService.create_notification_provider(settings)
        try:
            assert isinstance(provider, WebhookNotificationProvider)
        finally:
            provider.close()

    def test_notifications_disabled(self, temp_sqlite_db):
        settings = Settings(
            database=DatabaseSettings(path=str(temp_sqlite_db)),
            notifications=NotificationSettings(enabled=False),
        )
        service = LifecycleService(settings)
        try:
            assert service.notifications is None
        finally:
            service.stop()

    def test_start_recovers_chains_from_previous_run(self, settings):
        previous = LifecycleService(settings)
        previous.state_machine.place_order(make_order_request(), order_id="o1").unwrap()
        previous.stop()

        service = LifecycleService(settings)
        service.start()
        try:
            assert service.runner.is_running
            assert service.scheduler.is_registered(EntityKind.ORDER, "o1")
        finally:
            service.stop()

        assert not service.runner.is_running

    def test_stop_closes_notification_client(self, monkeypatch, settings):
        client = httpx.Client()
        provider = WebhookNotificationProvider("https://push.test/send", client=client)
        monkeypatch.setattr(
            LifecycleService, "create_notification_provider", staticmethod(lambda s: provider)
        )
        service = LifecycleService(settings)

        service.stop()

        assert client.is_closed

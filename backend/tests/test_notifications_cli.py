# Overview: Pytest coverage for notification delivery and the Flask CLI commands.

from distro.extensions import db
from distro.models import Notification
from distro.services import notification_service, order_service


class FailingSink:
    def publish(self, type, message, timestamp):
        raise ConnectionError("sink offline")


class TestNotificationSink:
    def test_sink_failure_does_not_fail_order(self, app, monkeypatch, db_session, sku, make_distributor, produce):
        distributor = make_distributor(balance_cents=100000)
        produce(sku, 10)
        monkeypatch.setitem(app.config, "NOTIFICATION_SINK", FailingSink())

        order = order_service.place_order(distributor.id, [{"sku_id": sku.id, "quantity": 1}], "exec.ravi")

        assert order_service.get_order(order.id).status == "Pending"

    def test_database_sink_feed(self, app, monkeypatch, db_session):
        monkeypatch.setitem(app.config, "NOTIFICATION_SINK", None)
        notification_service.notify("ORDER_PLACED", "New order 1 placed for A.")
        notification_service.notify("ORDER_PLACED", "New order 2 placed for A.")

        feed = notification_service.list_notifications(unread_only=True)
        assert len(feed) == 2

        notification_service.mark_notification_read(feed[0].id)
        assert len(notification_service.list_notifications(unread_only=True)) == 1
        assert notification_service.mark_all_notifications_read() == 1
        assert db.session.query(Notification).filter_by(is_read=False).count() == 0


class TestCli:
    def test_production_and_ledger_check(self, app, db_session, sku):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["stock", "production", "--sku", str(sku.id), "--quantity", "40"])
        assert result.exit_code == 0
        assert "plant quantity now 40" in result.output

        result = runner.invoke(args=["ledger", "check"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_production_error_is_reported(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "production", "--sku", "999", "--quantity", "1"])
        assert result.exit_code != 0
        assert "SKU 999 not found" in result.output

"""
Tests for the daily subscription sweep
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from app.core.exceptions import EmailDeliveryError
from app.services.subscription_service import SubscriptionService
from app.services.sweep_service import SWEEP_JOB_ID, DailySweep, SweepScheduler, next_run_after


class FailingSubscriptionService(SubscriptionService):
    """Fails to expire one principal"""

    def __init__(self, failing_id):
        super().__init__()
        self.failing_id = failing_id

    def expire(self, db, principal_id, now=None):
        if principal_id == self.failing_id:
            raise RuntimeError("database hiccup")
        return super().expire(db, principal_id, now=now)


class TestNextRunAfter:
    """Test the next scheduled run computation"""

    def test_before_hour_runs_same_day(self):
        assert next_run_after(datetime(2025, 3, 15, 1, 30), hour=2) == datetime(2025, 3, 15, 2, 0)

    def test_after_midnight_runs_next_day(self):
        assert next_run_after(datetime(2025, 3, 15, 10, 30), hour=0) == datetime(2025, 3, 16, 0, 0)

    def test_exactly_on_the_hour_runs_next_day(self):
        assert next_run_after(datetime(2025, 3, 15, 0, 0), hour=0) == datetime(2025, 3, 16, 0, 0)

    def test_crosses_month_boundary(self):
        assert next_run_after(datetime(2025, 2, 28, 23, 59), hour=0) == datetime(2025, 3, 1, 0, 0)


class TestDailySweep:
    """Test one sweep pass"""

    def test_expires_lapsed_accounts(self, db_session, make_user, make_guest, email_service, now):
        past = now - timedelta(hours=1)
        active = make_user(email="a@example.com", tier="premium", subscription_status="active",
                           subscription_expires_at=past)
        cancelled = make_user(email="c@example.com", tier="premium", subscription_status="cancelled",
                              subscription_expires_at=past)
        current = make_user(email="ok@example.com", tier="premium", subscription_status="active",
                            subscription_expires_at=now + timedelta(days=60))
        guest = make_guest("guest-s", tier="premium", subscription_status="active", subscription_expires_at=past)

        report = DailySweep(email_service=email_service).run_once(db_session, now)

        assert set(report.expired) == {active.id, cancelled.id, guest.guest_id}
        assert report.failed == []
        for account in (active, cancelled, guest):
            db_session.refresh(account)
            assert (account.tier, account.subscription_status) == ("free", "expired")
        db_session.refresh(current)
        assert current.tier == "premium"

    def test_sends_renewal_reminders(self, db_session, make_user, make_guest, email_service, now):
        expiry = now + timedelta(days=3)
        user = make_user(email="soon@example.com", tier="premium", subscription_status="active",
                         subscription_expires_at=expiry)
        guest = make_guest("guest-r", tier="premium", subscription_status="active", subscription_expires_at=expiry)

        report = DailySweep(email_service=email_service).run_once(db_session, now)

        assert report.reminders == [user.id, guest.guest_id]
        email_service.send_renewal_reminder.assert_called_once_with("soon@example.com", expiry)

    def test_reminder_failure_is_logged(self, db_session, make_user, email_service, now):
        user = make_user(tier="premium", subscription_status="active", subscription_expires_at=now + timedelta(days=2))
        email_service.send_renewal_reminder.side_effect = EmailDeliveryError("smtp down")

        report = DailySweep(email_service=email_service).run_once(db_session, now)

        assert report.reminders == [user.id]

    def test_one_failure_does_not_abort_batch(self, db_session, make_user, email_service, now):
        past = now - timedelta(days=1)
        bad = make_user(email="bad@example.com", tier="premium", subscription_status="active",
                        subscription_expires_at=past)
        good = make_user(email="good@example.com", tier="premium", subscription_status="active",
                         subscription_expires_at=past)
        sweep = DailySweep(subscription_service=FailingSubscriptionService(bad.id), email_service=email_service)

        report = sweep.run_once(db_session, now)

        assert report.failed == [bad.id]
        assert report.expired == [good.id]
        db_session.refresh(good)
        assert good.tier == "free"

    def test_dry_run_changes_nothing(self, db_session, make_user, email_service, now):
        user = make_user(tier="premium", subscription_status="active", subscription_expires_at=now - timedelta(days=1))
        make_user(email="soon@example.com", tier="premium", subscription_status="active",
                  subscription_expires_at=now + timedelta(days=1))

        report = DailySweep(email_service=email_service).run_once(db_session, now, dry_run=True)

        db_session.refresh(user)
        assert report.expired == [user.id]
        assert len(report.reminders) == 1
        assert user.tier == "premium"
        email_service.send_renewal_reminder.assert_not_called()

    def test_report_to_dict(self):
        from app.services.sweep_service import SweepReport

        assert SweepReport(expired=["a"]).to_dict() == {"expired": ["a"], "failed": [], "reminders": []}


class TestSweepScheduler:
    """Test the background scheduler wrapper"""

    def test_run_now_uses_injected_clock(self, database, now):
        sweep = MagicMock(spec=DailySweep)
        scheduler = SweepScheduler(database, sweep=sweep, hour=3, clock=lambda: now)

        scheduler.run_now()

        assert sweep.run_once.call_args.kwargs["now"] == now

    def test_run_now_swallows_errors(self, database, now):
        sweep = MagicMock(spec=DailySweep)
        sweep.run_once.side_effect = RuntimeError("boom")
        scheduler = SweepScheduler(database, sweep=sweep, clock=lambda: now)

        assert scheduler.run_now() is None

    def test_start_registers_daily_job(self, database):
        scheduler = SweepScheduler(database, sweep=MagicMock(spec=DailySweep), hour=4)

        scheduler.start()
        try:
            job = scheduler.scheduler.get_job(SWEEP_JOB_ID)
            assert scheduler.running
            assert job is not None
            assert "hour='4'" in str(job.trigger)
        finally:
            scheduler.shutdown()

        assert not scheduler.running

"""
Daily subscription sweep.

Expires accounts whose paid term has passed and emails renewal reminders to
active accounts close to expiry. `DailySweep.run_once` is the unit of work;
`SweepScheduler` runs it every day at `settings.sweep_hour` on an APScheduler
background thread.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import Database
from app.core.exceptions import EmailDeliveryError
from app.services.email_service import EmailService
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "daily_subscription_sweep"


@dataclass
class SweepReport:
    expired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    reminders: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'expired': list(self.expired),
            'failed': list(self.failed),
            'reminders': list(self.reminders),
        }


def next_run_after(now: datetime, hour: int = 0) -> datetime:
    """Next occurrence of hour:00 strictly after now"""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailySweep:
    def __init__(self, subscription_service: SubscriptionService = None, email_service: EmailService = None):
        self.subscription_service = subscription_service or SubscriptionService()
        self.email_service = email_service or EmailService()
        self.logger = logging.getLogger(__name__)

    def run_once(self, db: Session, now: datetime = None, dry_run: bool = False) -> SweepReport:
        """
        One reconciliation pass. A failure on one principal is logged and
        recorded in the report without stopping the rest of the batch.
        """
        now = now or datetime.utcnow()
        self.logger.info(f"run_once: Entry - now: {now.isoformat()}, dry_run: {dry_run}")
        report = SweepReport()

        for account in self.subscription_service.find_expired(db, now):
            principal_id = self.subscription_service.principal_id_of(account)
            if dry_run:
                report.expired.append(principal_id)
                continue
            try:
                self.subscription_service.expire(db, principal_id, now=now)
                report.expired.append(principal_id)
            except Exception as e:
                db.rollback()
                self.logger.error(f"run_once: Failure expiring {principal_id} - {e}")
                report.failed.append(principal_id)

        for account in self.subscription_service.find_renewal_candidates(db, now):
            principal_id = self.subscription_service.principal_id_of(account)
            report.reminders.append(principal_id)
            if dry_run or not account.email:
                continue
            try:
                self.email_service.send_renewal_reminder(account.email, account.subscription_expires_at)
            except EmailDeliveryError as e:
                self.logger.warning(f"run_once: Reminder failed for {principal_id} - {e}")

        self.logger.info(
            f"run_once: Success - expired: {len(report.expired)}, failed: {len(report.failed)}, "
            f"reminders: {len(report.reminders)}")
        return report


class SweepScheduler:
    """Runs the daily sweep on a background thread, once a day at a fixed hour"""

    def __init__(
        self,
        database: Database,
        sweep: Optional[DailySweep] = None,
        hour: int = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.database = database
        self.sweep = sweep or DailySweep()
        self.hour = settings.sweep_hour if hour is None else hour
        self.clock = clock
        self.scheduler = BackgroundScheduler(daemon=True)
        self.logger = logging.getLogger(__name__)

    def run_now(self) -> Optional[SweepReport]:
        db = self.database.session()
        try:
            return self.sweep.run_once(db, now=self.clock())
        except Exception as e:
            self.logger.error(f"run_now: Failure - {e}")
            return None
        finally:
            db.close()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self, run_soon: bool = False):
        self.logger.info(f"start: Entry - hour: {self.hour}")
        self.scheduler.add_job(
            func=self.run_now,
            trigger="cron",
            hour=self.hour,
            minute=0,
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )
        if run_soon:
            self.scheduler.add_job(
                func=self.run_now,
                trigger="date",
                run_date=datetime.now() + timedelta(seconds=5),
                id=f"{SWEEP_JOB_ID}_startup",
                replace_existing=True,
            )
        self.scheduler.start()
        self.logger.info(f"start: Success - next run: {next_run_after(datetime.now(), self.hour).isoformat()}")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("shutdown: Sweep scheduler stopped")

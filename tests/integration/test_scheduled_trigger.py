"""Tests for the authorized auto-approval entry point used by the scheduler."""

from datetime import timedelta
from uuid import uuid4

import pytest

from wastetrack.common.clock import utcnow
from wastetrack.core.lifecycle.errors import ForbiddenError, UnauthorizedError
from wastetrack.core.security import create_access_token
from wastetrack.db.models import AuditLog, Notification, Shipment
from wastetrack.services.audit import build_audit_sink
from wastetrack.services.auto_approval import run_auto_approval
from wastetrack.workers.lifecycle_tasks import celery_app

from tests.factories import SYSTEM_SECRET, create_admin, create_shipment


pytestmark = pytest.mark.integration


class TestRunAutoApproval:

    def test_denied_caller_never_reads_shipments(self, db_session, test_settings, monkeypatch):
        def fail_if_called(*args, **kwargs):
            raise AssertionError("engine must not run for a denied caller")

        monkeypatch.setattr("wastetrack.services.auto_approval.build_engine", fail_if_called)

        with pytest.raises(UnauthorizedError):
            run_auto_approval(db_session, None, test_settings)
        with pytest.raises(ForbiddenError):
            run_auto_approval(db_session, create_access_token(uuid4(), test_settings), test_settings)

    def test_system_run_writes_audit_and_notifications(self, db_session, session_factory, test_settings):
        shipment = create_shipment(db_session, stage_entered_at=utcnow() - timedelta(hours=49))

        result = run_auto_approval(
            db_session,
            SYSTEM_SECRET,
            test_settings,
            audit_sink=build_audit_sink(test_settings, session_factory),
        )

        assert result.advanced == 1
        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).status == "in_transit"

        entry = db_session.query(AuditLog).one()
        assert entry.trigger == "system"
        assert entry.user_id == test_settings.system_actor_id
        assert db_session.query(Notification).filter(
            Notification.shipment_id == shipment.id,
        ).count() == 3

    def test_admin_run(self, db_session, test_settings):
        create_shipment(db_session, stage_entered_at=utcnow() - timedelta(hours=49))
        admin_id = create_admin(db_session)

        result = run_auto_approval(db_session, create_access_token(admin_id, test_settings), test_settings)
        assert result.advanced == 1


class TestCeleryConfiguration:

    def test_beat_schedule(self):
        entry = celery_app.conf.beat_schedule["auto-approve-expired-shipments"]
        assert entry["task"] == "wastetrack.workers.lifecycle_tasks.auto_approve_expired_shipments"
        assert entry["schedule"] == 15 * 60.0

    def test_task_is_registered(self):
        assert "wastetrack.workers.lifecycle_tasks.auto_approve_expired_shipments" in celery_app.tasks

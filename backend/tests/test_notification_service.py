"""
Notification outbox, delivery worker and inbox tests.
"""

import smtplib
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from certflow.models import CertificateRequest, Notification, NotificationEvent
from certflow.services import invoice_service, notification_service, request_service
from certflow.services.notification_service import (
    Mailer,
    STATUS_DELIVERED,
    STATUS_FAILED,
    STATUS_PENDING,
    deliver_pending_notifications,
    emit_event,
    event_type_for,
)
from certflow.time_utils import utcnow


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__(host="smtp.certflow.test")
        self.sent = []

    def send(self, recipient, subject, body):
        self.sent.append((recipient, subject, body))
        return True


def _file_request(caller):
    return request_service.create_request({
        "task_title": "Login smoke tests",
        "associated_team": "Identity",
        "associated_project": "Portal",
        "description": "Smoke tests for login",
    }, caller)


class TestEventTypes:

    def test_new_request(self):
        assert event_type_for("request", "pending") == "new-request"

    def test_other_statuses(self):
        assert event_type_for("request", "needs_revision") == "request-needs-revision"
        assert event_type_for("invoice", "partially_paid") == "invoice-partially-paid"


class TestEmission:

    def test_failure_is_swallowed(self, db_session, monkeypatch):
        def _broken(**kwargs):
            raise SQLAlchemyError("outbox unavailable")

        monkeypatch.setattr(notification_service, "NotificationEvent", _broken)

        assert emit_event(entity_kind="request", entity_id=1, entity_status="approved") is False

    def test_failed_emission_keeps_transition(self, db_session, requester, qa_tester, monkeypatch):
        req = _file_request(requester)

        def _broken(**kwargs):
            raise SQLAlchemyError("outbox unavailable")

        monkeypatch.setattr(notification_service, "NotificationEvent", _broken)

        updated, result = request_service.transition_request(req.id, "approved", qa_tester)

        assert result.allowed
        assert db_session.get(CertificateRequest, req.id).status == "approved"
        assert updated.certificate_id is not None
        # only the creation event made it to the outbox
        assert db_session.query(NotificationEvent).count() == 1


class TestDelivery:

    def test_new_request_goes_to_reviewers(self, db_session, requester, qa_tester, manager):
        _file_request(requester)
        mailer = RecordingMailer()

        summary = deliver_pending_notifications(mailer=mailer)

        assert summary == {"processed": 1, "delivered": 1, "retrying": 0, "failed": 0}
        recipients = [n.user_id for n in db_session.query(Notification).all()]
        assert recipients == [qa_tester.id]
        assert [to for to, _, _ in mailer.sent] == [qa_tester.email]
        assert db_session.query(NotificationEvent).one().status == STATUS_DELIVERED

    def test_decision_goes_to_requester_with_reason(self, db_session, requester, qa_tester):
        req = _file_request(requester)
        request_service.transition_request(req.id, "rejected", qa_tester, reason="Flaky assertions")
        deliver_pending_notifications(mailer=Mailer())

        inbox = notification_service.list_notifications(requester.id)
        assert len(inbox) == 1
        assert inbox[0].title == "Request Rejected"
        assert "Flaky assertions" in inbox[0].body
        assert inbox[0].link == f"/requests/{req.id}"

    def test_actor_is_not_notified(self, db_session, admin):
        # admin both files the request and holds requests:approve
        _file_request(admin)
        deliver_pending_notifications(mailer=Mailer())
        assert db_session.query(Notification).count() == 0

    def test_assignment_goes_to_tester(self, db_session, requester, qa_tester, admin):
        req = _file_request(requester)
        request_service.transition_request(req.id, "assigned", admin, qa_tester_id=qa_tester.id)
        deliver_pending_notifications(mailer=Mailer())

        latest = notification_service.list_notifications(qa_tester.id)[0]
        assert latest.title == "Request Assigned"
        assert notification_service.list_notifications(requester.id) == []

    def test_failing_event_retries_then_fails(self, db_session):
        emit_event(entity_kind="request", entity_id=9999, entity_status="approved")

        first = deliver_pending_notifications(mailer=Mailer(), max_attempts=2)
        assert first["retrying"] == 1
        event = db_session.query(NotificationEvent).one()
        assert event.status == STATUS_PENDING
        assert event.attempts == 1
        assert "not found" in event.last_error

        second = deliver_pending_notifications(mailer=Mailer(), max_attempts=2)
        assert second["failed"] == 1
        assert db_session.query(NotificationEvent).one().status == STATUS_FAILED

        assert deliver_pending_notifications(mailer=Mailer(), max_attempts=2)["processed"] == 0

    def test_disabled_mailer_sends_nothing(self):
        assert Mailer().enabled is False
        assert Mailer().send("someone@certflow.test", "Hi", "Body") is False


class TestInbox:

    def test_mark_read(self, db_session, requester, qa_tester):
        req = _file_request(requester)
        request_service.transition_request(req.id, "approved", qa_tester)
        deliver_pending_notifications(mailer=Mailer())

        note = notification_service.list_notifications(requester.id, unread_only=True)[0]
        assert notification_service.mark_read(note.id, qa_tester.id) is None

        marked = notification_service.mark_read(note.id, requester.id)
        assert marked.is_read is True
        assert marked.read_at is not None
        assert notification_service.list_notifications(requester.id, unread_only=True) == []


class FlakyMailer(RecordingMailer):
    """Fails the first send to failing_address, then behaves."""

    def __init__(self, failing_address):
        super().__init__()
        self.failing_address = failing_address
        self.failed_once = False

    def send(self, recipient, subject, body):
        if recipient == self.failing_address and not self.failed_once:
            self.failed_once = True
            raise smtplib.SMTPException("mailbox busy")
        return super().send(recipient, subject, body)


def _past_due_invoice(hr_admin):
    invoice = invoice_service.create_invoice({
        "client_name": "Acme Ltd",
        "client_email": "billing@acme.test",
        "due_date": "2020-01-31",
        "line_items": [{"description": "QA audit", "quantity": 1, "unit_price_cents": 100_000}],
    }, hr_admin)
    invoice, _ = invoice_service.transition_invoice(invoice.id, "sent", hr_admin)
    return invoice


class TestCommentsAndReminders:

    def test_reviewer_comment_goes_to_requester(self, db_session, requester, qa_tester):
        req = _file_request(requester)
        deliver_pending_notifications(mailer=Mailer())

        request_service.add_comment(req.id, qa_tester, "Which browser?")
        deliver_pending_notifications(mailer=Mailer())

        latest = notification_service.list_notifications(requester.id)[0]
        assert latest.title == "New Comment"
        assert "Which browser?" in latest.body
        assert qa_tester.name in latest.body

    def test_requester_comment_goes_to_assigned_tester(self, db_session, requester, qa_tester):
        req = _file_request(requester)
        request_service.transition_request(req.id, "assigned", qa_tester)
        deliver_pending_notifications(mailer=Mailer())
        before = len(notification_service.list_notifications(qa_tester.id))

        request_service.add_comment(req.id, requester, "Chrome only")
        deliver_pending_notifications(mailer=Mailer())

        inbox = notification_service.list_notifications(qa_tester.id)
        assert len(inbox) == before + 1
        assert inbox[0].title == "New Comment"

    def test_requester_comment_without_tester_notifies_nobody(self, db_session, requester, qa_tester):
        req = _file_request(requester)
        deliver_pending_notifications(mailer=Mailer())
        before = db_session.query(Notification).count()

        request_service.add_comment(req.id, requester, "Any update?")
        summary = deliver_pending_notifications(mailer=Mailer())

        assert summary["delivered"] == 1
        assert db_session.query(Notification).count() == before

    def test_followup_goes_to_approvers(self, db_session, requester, qa_tester, manager):
        req = _file_request(requester)
        deliver_pending_notifications(mailer=Mailer())
        req.created_at = utcnow() - timedelta(days=5)
        db_session.commit()

        request_service.send_pending_followups(now=utcnow(), days=3)
        mailer = RecordingMailer()
        deliver_pending_notifications(mailer=mailer)

        assert [to for to, _, _ in mailer.sent] == [qa_tester.email]
        latest = notification_service.list_notifications(qa_tester.id)[0]
        assert latest.title == "Pending Request Reminder"
        assert "more than 3 days" in latest.body

    def test_invoice_reminder_goes_to_client_and_creator(self, db_session, hr_admin):
        invoice = _past_due_invoice(hr_admin)
        deliver_pending_notifications(mailer=Mailer())

        invoice_service.send_invoice_reminders(now=utcnow())
        mailer = RecordingMailer()
        deliver_pending_notifications(mailer=mailer)

        assert sorted(to for to, _, _ in mailer.sent) == sorted([hr_admin.email, "billing@acme.test"])
        subject = mailer.sent[0][1]
        assert subject == f"Payment Reminder: Invoice {invoice.invoice_number}"
        assert "NGN 1,000.00" in mailer.sent[0][2]


class TestRetryDoesNotDuplicate:

    def test_retry_skips_sent_mail_and_inbox_rows(self, db_session, hr_admin):
        _past_due_invoice(hr_admin)
        deliver_pending_notifications(mailer=Mailer())
        invoice_service.send_invoice_reminders(now=utcnow())
        inbox_before = db_session.query(Notification).count()

        mailer = FlakyMailer("billing@acme.test")
        first = deliver_pending_notifications(mailer=mailer)

        assert first["retrying"] == 1
        event = db_session.query(NotificationEvent).filter_by(event_type="invoice-reminder").one()
        assert event.status == STATUS_PENDING
        assert event.emailed_to == [hr_admin.email]
        assert db_session.query(Notification).count() == inbox_before + 1

        second = deliver_pending_notifications(mailer=mailer)

        assert second["delivered"] == 1
        assert [to for to, _, _ in mailer.sent] == [hr_admin.email, "billing@acme.test"]
        assert db_session.query(Notification).count() == inbox_before + 1
        event = db_session.query(NotificationEvent).filter_by(event_type="invoice-reminder").one()
        assert event.status == STATUS_DELIVERED

import smtplib

import pytest

from cooperative import notifications
from cooperative.models import Notification
from cooperative.notifications import NotificationDispatcher, render_email, send_email


def test_email_needs_credentials(settings):
    settings.EMAIL_HOST_USER = ''
    settings.EMAIL_HOST_PASSWORD = ''
    assert send_email('ada@example.com', 'Hello', '<p>Hi</p>') is False


def test_smtp_failure_is_reported_not_raised(settings, monkeypatch):
    settings.EMAIL_HOST_USER = 'portal@example.com'
    settings.EMAIL_HOST_PASSWORD = 'secret'

    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, 'Service not available')

    monkeypatch.setattr(notifications.smtplib, 'SMTP', refuse)
    assert send_email('ada@example.com', 'Hello', '<p>Hi</p>') is False


def test_email_body_is_escaped(settings):
    settings.COOPERATIVE_NAME = 'Unity Cooperative'
    html = render_email('Loan <Approved>', 'Amount & terms')
    assert 'Loan &lt;Approved&gt;' in html
    assert 'Amount &amp; terms' in html
    assert 'Unity Cooperative' in html


@pytest.mark.django_db
class TestNotificationDispatcher:

    def test_submission_notice(self, notifier, mailer, saver, make_loan):
        loan = make_loan(saver, '20000')
        notifier.loan_submitted(loan)

        notice = Notification.objects.get(notification_type='loan_submitted')
        assert notice.recipient == saver.user
        assert notice.member == saver
        assert loan.reference in notice.message
        assert mailer.recipients == [saver.user.email]

    def test_member_email_used_without_login(self, notifier, mailer, make_member, make_loan):
        member = make_member()
        notifier.loan_submitted(make_loan(member, '20000'))
        assert mailer.recipients == [member.email]

    def test_routing_failure_goes_to_admins(self, notifier, saver, make_loan, admin_user, officer):
        notifier.workflow_failed(make_loan(saver, '20000'), 'No approval workflow is configured')

        recipients = set(Notification.objects.values_list('recipient__username', flat=True))
        assert recipients == {'admin'}

    def test_mail_errors_are_not_raised(self, saver, make_loan):
        def broken_mailer(to_email, subject, html_content):
            raise ValueError('bad header')

        notifier = NotificationDispatcher(send=broken_mailer)
        notifier.loan_submitted(make_loan(saver, '20000'))

        assert Notification.objects.filter(notification_type='loan_submitted').exists()

    def test_mark_as_read(self, notifier, saver, make_loan):
        notifier.loan_submitted(make_loan(saver, '20000'))
        notice = Notification.objects.get()
        notice.mark_as_read()
        notice.refresh_from_db()
        assert notice.is_read
        assert notice.read_at is not None


def test_default_dispatcher_sends_real_email():
    assert NotificationDispatcher().send is send_email

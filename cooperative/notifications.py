"""
Notification Service for the Cooperative Portal
===============================================

Writes in-app notifications and sends plain SMTP email.

Every dispatch is fire-and-forget: failures are logged and never raised, so
a broken mail server cannot undo a loan application or an approval.
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from django.conf import settings
from django.db import DatabaseError
from django.utils.html import escape
import logging

from cooperative.models import Guarantor, Notification, User
from cooperative.utils.money import MoneyCalculator

logger = logging.getLogger(__name__)


def send_email(to_email, subject, html_content):
    """
    Send HTML email using SMTP

    Args:
        to_email: Recipient email address
        subject: Email subject
        html_content: HTML content of the email

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    smtp_host = getattr(settings, 'EMAIL_HOST', 'smtp.gmail.com')
    smtp_port = getattr(settings, 'EMAIL_PORT', 587)
    smtp_username = getattr(settings, 'EMAIL_HOST_USER', '')
    smtp_password = getattr(settings, 'EMAIL_HOST_PASSWORD', '')
    from_email = getattr(settings, 'DEFAULT_FROM_EMAIL', smtp_username)

    if not smtp_username or not smtp_password:
        logger.warning("Email credentials not configured. Email not sent.")
        return False

    try:
        message = MIMEMultipart('alternative')
        message['Subject'] = subject
        message['From'] = from_email
        message['To'] = to_email
        message.attach(MIMEText(html_content, 'html'))

        use_tls = getattr(settings, 'EMAIL_USE_TLS', True)

        if use_tls:
            server = smtplib.SMTP(smtp_host, smtp_port)
            server.starttls()
        else:
            server = smtplib.SMTP_SSL(smtp_host, smtp_port)

        server.login(smtp_username, smtp_password)
        server.sendmail(from_email, to_email, message.as_string())
        server.quit()

        logger.info(f"Email sent successfully to {to_email}")
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {str(e)}")
        return False


def render_email(title, body):
    """Minimal HTML wrapper for notification emails"""
    cooperative_name = getattr(settings, 'COOPERATIVE_NAME', 'Cooperative Society')
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="UTF-8"></head>
    <body style="font-family: 'Segoe UI', Tahoma, sans-serif; color: #333; background-color: #f4f4f4;">
        <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 30px;">
            <h2 style="color: #15803d;">{escape(title)}</h2>
            <p>{escape(body)}</p>
            <p style="color: #6b7280; font-size: 12px;">{escape(cooperative_name)}</p>
        </div>
    </body>
    </html>
    """


class NotificationDispatcher:
    """
    Loan and workflow notifications

    Args:
        send: callable(to_email, subject, html) used for email delivery
    """

    def __init__(self, send=send_email):
        self.send = send

    def _notify(self, notification_type, title, message, recipient=None, member=None, loan=None):
        try:
            Notification.objects.create(
                recipient=recipient,
                member=member,
                notification_type=notification_type,
                title=title,
                message=message,
                related_loan=loan,
            )
        except DatabaseError:
            logger.exception(f"Could not store {notification_type} notification")

        email = None
        if recipient is not None and recipient.email:
            email = recipient.email
        elif member is not None and member.email:
            email = member.email
        if not email:
            return
        try:
            self.send(email, title, render_email(title, message))
        except Exception:
            logger.exception(f"Could not email {notification_type} notification to {email}")

    # =========================================================================
    # EVENTS
    # =========================================================================

    def loan_submitted(self, loan):
        member = loan.member
        self._notify(
            'loan_submitted',
            "Loan Application Received",
            f"Your application {loan.reference} for {MoneyCalculator.format_currency(loan.principal)} "
            f"has been received and is being processed.",
            recipient=member.user,
            member=member,
            loan=loan,
        )

    def approval_requested(self, workflow, approvers, loan=None):
        level = workflow.current_level_definition()
        level_name = level.name if level else f"level {workflow.current_level}"
        subject = loan.reference if loan else f"{workflow.entity_type} {workflow.entity_id}"
        for approver in approvers:
            self._notify(
                'approval_requested',
                "Approval Required",
                f"{subject} is awaiting your decision at {level_name}.",
                recipient=approver,
                loan=loan,
            )

    def workflow_completed(self, workflow, loan):
        outcomes = {
            'approved': ('loan_approved', "Loan Approved",
                         "has been approved"),
            'rejected': ('loan_rejected', "Loan Application Rejected",
                         "was not approved"),
            'changes_requested': ('loan_revision_requested', "Changes Requested",
                                  "needs changes before it can be approved"),
        }
        if workflow.status not in outcomes:
            return
        notification_type, title, outcome = outcomes[workflow.status]
        message = f"Your loan application {loan.reference} {outcome}."
        if workflow.final_comments:
            message += f" Comments: {workflow.final_comments}"
        self._notify(notification_type, title, message, recipient=loan.member.user, member=loan.member, loan=loan)

    def workflow_failed(self, loan, reason):
        for admin in User.objects.filter(role=User.Role.ADMIN, is_active=True):
            self._notify(
                'workflow_failed',
                "Approval Routing Failed",
                f"Loan {loan.reference} was saved but could not be routed for approval: {reason}",
                recipient=admin,
                loan=loan,
            )

    def workflow_timed_out(self, workflow, loan=None):
        subject = loan.reference if loan else f"{workflow.entity_type} {workflow.entity_id}"
        self._notify(
            'workflow_timeout',
            "Approval Timed Out",
            f"The approval of {subject} timed out at level {workflow.current_level}.",
            recipient=workflow.requested_by,
            member=loan.member if loan else None,
            loan=loan,
        )

    def guarantor_signoff_requested(self, guarantee):
        loan = guarantee.loan
        guarantor = guarantee.guarantor
        self._notify(
            'guarantor_signoff_requested',
            "Guarantor Sign-off Requested",
            f"{loan.member.get_full_name()} has listed you as guarantor for loan {loan.reference} "
            f"({MoneyCalculator.format_currency(guarantee.guarantee_amount)}). "
            f"Please accept or decline the request.",
            recipient=guarantor.user,
            member=guarantor,
            loan=loan,
        )

    def guarantor_responded(self, guarantee):
        """Tell loan staff that a guarantor accepted or declined"""
        loan = guarantee.loan
        outcome = 'accepted' if guarantee.status == Guarantor.Status.ACTIVE else 'declined'
        message = (
            f"{guarantee.guarantor.get_full_name()} {outcome} the guarantee of "
            f"{MoneyCalculator.format_currency(guarantee.guarantee_amount)} on loan {loan.reference}."
        )
        if guarantee.response_comments:
            message += f" Comments: {guarantee.response_comments}"
        staff = User.objects.filter(
            role__in=[User.Role.ADMIN, User.Role.LOAN_OFFICER],
            is_active=True,
        )
        for user in staff:
            self._notify(
                'guarantor_responded',
                "Guarantor Responded",
                message,
                recipient=user,
                loan=loan,
            )

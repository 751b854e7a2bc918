"""
Customer notification tests.

The engine schedules notify_ticket_status_changed on commit whenever a
ticket lands in a terminal status.
"""

import pytest
import uuid
from decimal import Decimal

from after_sales.commands import ApproveTicket, RejectTicket, SubmitTicket
from after_sales.engine import execute
from after_sales.models import AfterSalesTicket, ClaimType, ResolutionType, TicketStatus
from after_sales.tasks import notify_ticket_status_changed


@pytest.mark.django_db
class TestNotifyTask:

    def test_sends_status_mail_to_customer(self, mailoutbox, customer, order):
        ticket = AfterSalesTicket.objects.create(
            order=order,
            customer=customer,
            claim_type=ClaimType.RETURN,
            status=TicketStatus.REJECTED,
            reason='Wrong size',
            policy_violation='Return window of 7 day(s) has expired.',
        )

        notify_ticket_status_changed(str(ticket.id))

        assert len(mailoutbox) == 1
        message = mailoutbox[0]
        assert message.to == ['customer@example.com']
        assert order.order_number in message.subject
        assert 'is now Rejected' in message.body
        assert 'Return window of 7 day(s) has expired.' in message.body

    def test_resolved_refund_mentions_amount(self, mailoutbox, customer, order):
        ticket = AfterSalesTicket.objects.create(
            order=order,
            customer=customer,
            claim_type=ClaimType.REFUND,
            status=TicketStatus.RESOLVED,
            resolution_type=ResolutionType.REFUND_ONLY,
            reason='Lens coating peeled',
            refund_amount=Decimal('42.00'),
        )

        notify_ticket_status_changed(str(ticket.id))

        assert 'Refund amount: 42.00' in mailoutbox[0].body

    def test_skips_customer_without_email(self, mailoutbox, customer, order):
        customer.email = ''
        customer.save(update_fields=['email'])
        ticket = AfterSalesTicket.objects.create(
            order=order, customer=customer, claim_type=ClaimType.RETURN,
            status=TicketStatus.REJECTED, reason='x',
        )

        assert notify_ticket_status_changed(str(ticket.id)) == 'No recipient'
        assert mailoutbox == []

    def test_skips_missing_ticket(self, mailoutbox):
        assert notify_ticket_status_changed(str(uuid.uuid4())) == 'Ticket not found'
        assert mailoutbox == []

    def test_skips_when_disabled(self, settings, mailoutbox, customer, order):
        settings.AFTER_SALES_NOTIFICATIONS_ENABLED = False
        ticket = AfterSalesTicket.objects.create(
            order=order, customer=customer, claim_type=ClaimType.RETURN,
            status=TicketStatus.REJECTED, reason='x',
        )

        assert notify_ticket_status_changed(str(ticket.id)) == 'Notifications disabled'
        assert mailoutbox == []


@pytest.mark.django_db
class TestEngineSchedulesNotifications:

    def test_terminal_transition_notifies_after_commit(self, django_capture_on_commit_callbacks,
                                                       mailoutbox, submit, customer, order, policies,
                                                       sales_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            execute(RejectTicket(ticket_id=ticket.id, reason='Item was worn'), actor=sales_staff)

        assert len(callbacks) == 1
        assert len(mailoutbox) == 1
        assert 'Item was worn' in mailoutbox[0].body

    def test_non_terminal_transition_does_not_notify(self, django_capture_on_commit_callbacks,
                                                     mailoutbox, submit, customer, order, policies,
                                                     sales_staff):
        ticket = submit(customer, order, ClaimType.WARRANTY)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            execute(ApproveTicket(ticket_id=ticket.id, resolution_type=ResolutionType.WARRANTY_REPAIR),
                    actor=sales_staff)

        assert callbacks == []
        assert mailoutbox == []

    def test_submit_rejected_by_policy_notifies(self, django_capture_on_commit_callbacks, mailoutbox,
                                                make_order, customer, variant, policies):
        late_order = make_order(customer, [(variant, 1, '100.00')], delivered_days_ago=30)

        with django_capture_on_commit_callbacks(execute=True):
            ticket = execute(
                SubmitTicket(order_id=late_order.id, claim_type=ClaimType.RETURN, reason='Too small'),
                actor=customer,
            )

        assert ticket.status == TicketStatus.REJECTED
        assert len(mailoutbox) == 1

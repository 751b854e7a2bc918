"""
Celery tasks for after-sales notifications.
"""

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def notify_ticket_status_changed(self, ticket_id: str):
    """
    E-mail the customer once their ticket reaches a terminal status.

    Scheduled by after_sales.engine with transaction.on_commit, so the ticket
    read here is the committed state.

    Usage:
        from after_sales.tasks import notify_ticket_status_changed
        notify_ticket_status_changed.delay(str(ticket.id))
    """
    from .models import AfterSalesTicket, TicketStatus

    if not settings.AFTER_SALES_NOTIFICATIONS_ENABLED:
        return 'Notifications disabled'

    ticket = AfterSalesTicket.objects.select_related('order', 'customer').filter(pk=ticket_id).first()
    if ticket is None:
        logger.warning(f"Ticket {ticket_id} no longer exists; notification skipped")
        return 'Ticket not found'

    if not ticket.customer.email:
        logger.info(f"Customer of ticket {ticket_id} has no e-mail address; notification skipped")
        return 'No recipient'

    lines = [
        f"Hello {ticket.customer.get_full_name() or ticket.customer.username},",
        '',
        f"Your {ticket.get_claim_type_display().lower()} request for order "
        f"{ticket.order.order_number} is now {ticket.get_status_display()}.",
    ]
    if ticket.policy_violation:
        lines.append(ticket.policy_violation)
    if ticket.refund_amount is not None and ticket.status == TicketStatus.RESOLVED:
        lines.append(f"Refund amount: {ticket.refund_amount:.2f}")
    if ticket.staff_notes:
        lines += ['', ticket.staff_notes]

    try:
        result = send_mail(
            subject=f"Update on your request for order {ticket.order.order_number}",
            message='\n'.join(lines),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[ticket.customer.email],
            fail_silently=False,
        )
        logger.info(f"Ticket {ticket_id} notification sent to {ticket.customer.email}: {result}")
        return result
    except Exception as exc:
        logger.error(f"Ticket {ticket_id} notification failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

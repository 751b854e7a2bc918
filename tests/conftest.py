"""
Shared fixtures for the after-sales test suite.

Orders are created Shipped and moved to Delivered through Order.transition_to
so that the status history carries the delivered timestamp the engine reads.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.db import connection
from django.utils import timezone
from rest_framework.test import APIClient

from after_sales.commands import ApproveTicket, ReceiveGoods, SubmitTicket
from after_sales.engine import execute
from after_sales.models import ClaimType, PolicyConfiguration
from inventory.models import ProductVariant, Stock
from orders.models import Order, OrderItem, OrderStatus, OrderStatusHistory, OrderType
from payments.models import Payment, PaymentStatus

User = get_user_model()


def pytest_collection_modifyitems(config, items):
    """A run that selects the postgres tests must not skip them all on SQLite."""
    if (config.getoption('markexpr') or '').strip() == 'postgres' and connection.vendor != 'postgresql':
        raise pytest.UsageError('-m postgres needs TEST_USE_POSTGRES=True and a PostgreSQL database')


# =============================================================================
# USERS
# =============================================================================

def _create_user(username, role):
    return User.objects.create_user(
        username=username,
        email=f'{username}@example.com',
        password='testpass123',
        role=role,
        first_name=username.title(),
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def customer(db):
    return _create_user('customer', User.UserRole.CUSTOMER)


@pytest.fixture
def other_customer(db):
    return _create_user('other_customer', User.UserRole.CUSTOMER)


@pytest.fixture
def sales_staff(db):
    return _create_user('sales', User.UserRole.SALES_STAFF)


@pytest.fixture
def ops_staff(db):
    return _create_user('operations', User.UserRole.OPERATIONS_STAFF)


@pytest.fixture
def manager(db):
    return _create_user('manager', User.UserRole.MANAGER)


# =============================================================================
# CATALOG AND STOCK
# =============================================================================

@pytest.fixture
def make_variant(db):
    def _make_variant(sku, on_hand=10, reserved=0, with_stock=True):
        variant = ProductVariant.objects.create(sku=sku, name=f'Frame {sku}', color='Black', size='M')
        if with_stock:
            Stock.objects.create(product_variant=variant, quantity_on_hand=on_hand, quantity_reserved=reserved)
        return variant
    return _make_variant


@pytest.fixture
def variant(make_variant):
    return make_variant('FRM-001')


@pytest.fixture
def variant_2(make_variant):
    return make_variant('FRM-002')


# =============================================================================
# ORDERS AND PAYMENTS
# =============================================================================

@pytest.fixture
def make_order(db):
    """
    Build an order for a customer.

    lines: iterable of (variant, quantity, unit_price)
    delivered_days_ago: backdates the Delivered history entry; None leaves
        the order Delivered with no history entry at all
    """
    def _make_order(customer, lines, delivered_days_ago=2, order_type=OrderType.READY_STOCK,
                    status=OrderStatus.DELIVERED):
        lines = list(lines)
        order = Order.objects.create(
            customer=customer,
            order_type=order_type,
            status=OrderStatus.SHIPPED,
            total_amount=sum((Decimal(price) * qty for _, qty, price in lines), Decimal('0.00')),
        )
        for line_variant, quantity, unit_price in lines:
            OrderItem.objects.create(
                order=order,
                product_variant=line_variant,
                quantity=quantity,
                unit_price=Decimal(unit_price),
            )

        if delivered_days_ago is None:
            Order.objects.filter(pk=order.pk).update(status=status)
            order.status = status
            return order

        history = order.transition_to(OrderStatus.DELIVERED)
        OrderStatusHistory.objects.filter(pk=history.pk).update(
            created_at=timezone.now() - timedelta(days=delivered_days_ago)
        )
        if status != OrderStatus.DELIVERED:
            order.transition_to(status)
        return order
    return _make_order


@pytest.fixture
def make_payment(db):
    def _make_payment(order, amount, status=PaymentStatus.COMPLETED):
        return Payment.objects.create(
            order=order,
            amount=Decimal(amount),
            status=status,
            paid_at=timezone.now() if status == PaymentStatus.COMPLETED else None,
        )
    return _make_payment


@pytest.fixture
def order(make_order, customer, variant):
    """Delivered two days ago: one frame at 100.00."""
    return make_order(customer, [(variant, 1, '100.00')])


@pytest.fixture
def payment(make_payment, order):
    return make_payment(order, '100.00')


# =============================================================================
# POLICIES
# =============================================================================

@pytest.fixture
def return_policy(db):
    return PolicyConfiguration.objects.create(
        claim_type=ClaimType.RETURN,
        policy_name='Standard Return Policy',
        return_window_days=7,
        effective_from=timezone.now() - timedelta(days=365),
    )


@pytest.fixture
def warranty_policy(db):
    return PolicyConfiguration.objects.create(
        claim_type=ClaimType.WARRANTY,
        policy_name='Standard Warranty Policy',
        warranty_months=6,
        effective_from=timezone.now() - timedelta(days=365),
    )


@pytest.fixture
def refund_policy(db):
    return PolicyConfiguration.objects.create(
        claim_type=ClaimType.REFUND,
        policy_name='Standard Refund Policy',
        refund_allowed=True,
        customized_lens_refundable=False,
        evidence_required=False,
        effective_from=timezone.now() - timedelta(days=365),
    )


@pytest.fixture
def policies(return_policy, warranty_policy, refund_policy):
    return {
        ClaimType.RETURN: return_policy,
        ClaimType.WARRANTY: warranty_policy,
        ClaimType.REFUND: refund_policy,
    }


# =============================================================================
# ENGINE SHORTCUTS
# =============================================================================

@pytest.fixture
def submit():
    def _submit(actor, order, claim_type, reason='Frame arrived cracked', **kwargs):
        return execute(
            SubmitTicket(order_id=order.id, claim_type=claim_type, reason=reason, **kwargs),
            actor=actor,
        )
    return _submit


@pytest.fixture
def approved_ticket(submit, policies):
    """Submit, approve and optionally receive a physical-resolution ticket."""
    def _approved_ticket(customer, order, claim_type, resolution_type, staff, received=True, **kwargs):
        ticket = submit(customer, order, claim_type, **kwargs)
        ticket = execute(ApproveTicket(ticket_id=ticket.id, resolution_type=resolution_type), actor=staff)
        if received:
            ticket = execute(ReceiveGoods(ticket_id=ticket.id), actor=staff)
        return ticket
    return _approved_ticket

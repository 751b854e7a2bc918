"""
API views for after-sales tickets.

Three surfaces share the same engine:
- /api/me/after-sales/          customers submit and follow their own claims
- /api/staff/after-sales/       sales staff review, approve and reject
- /api/operations/after-sales/  operations staff receive and inspect goods

Command endpoints validate the body, hand a command to after_sales.engine and
return the ticket detail. Engine failures are APIExceptions and propagate to
core.exceptions.api_exception_handler.
"""

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.filters import OrderingFilter
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from accounts.permissions import IsCustomer, IsOperationsStaff, IsSalesStaff

from .commands import ReceiveGoods
from .engine import execute
from .models import AfterSalesTicket
from .serializers import (
    ApproveTicketSerializer,
    InspectTicketSerializer,
    RejectTicketSerializer,
    StaffTicketListSerializer,
    SubmitTicketSerializer,
    TicketDetailSerializer,
    TicketListSerializer,
)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for staff ticket lists."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class CustomerResultsSetPagination(StandardResultsSetPagination):
    page_size = 10


def _detail_response(ticket, status_code=status.HTTP_200_OK):
    return Response(TicketDetailSerializer(ticket).data, status=status_code)


# ==============================================================================
# CUSTOMER
# ==============================================================================

class CustomerTicketListCreateView(generics.ListCreateAPIView):
    """
    GET  /api/me/after-sales/ - List the customer's own tickets, newest first
    POST /api/me/after-sales/ - Submit a return, warranty or refund claim
    """
    permission_classes = [IsCustomer]
    pagination_class = CustomerResultsSetPagination
    filter_backends = []

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return SubmitTicketSerializer
        return TicketListSerializer

    def get_queryset(self):
        return AfterSalesTicket.objects.for_customer(self.request.user).with_summary().order_by('-created_at')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = execute(serializer.to_command(), actor=request.user)
        return _detail_response(ticket, status.HTTP_201_CREATED)


class CustomerTicketDetailView(generics.RetrieveAPIView):
    """Customers only see their own tickets; anyone else's is a 404."""
    permission_classes = [IsCustomer]
    serializer_class = TicketDetailSerializer
    lookup_field = 'id'

    def get_queryset(self):
        return AfterSalesTicket.objects.for_customer(self.request.user).with_detail()


# ==============================================================================
# SALES STAFF
# ==============================================================================

class StaffTicketListView(generics.ListAPIView):
    permission_classes = [IsSalesStaff]
    serializer_class = StaffTicketListSerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ['status', 'claim_type', 'order']
    ordering_fields = ['created_at', 'status']
    ordering = ['-created_at']

    def get_queryset(self):
        return AfterSalesTicket.objects.with_summary()


class StaffTicketDetailView(generics.RetrieveAPIView):
    permission_classes = [IsSalesStaff]
    serializer_class = TicketDetailSerializer
    lookup_field = 'id'

    def get_queryset(self):
        return AfterSalesTicket.objects.with_detail()


@api_view(['POST'])
@permission_classes([IsSalesStaff])
def approve_ticket(request, id):
    """
    Approve a pending ticket with a resolution type.

    RefundOnly resolves at once with a pending refund; other resolutions
    move the ticket to operations for receipt and inspection.
    """
    serializer = ApproveTicketSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    ticket = execute(serializer.to_command(id), actor=request.user)
    return _detail_response(ticket)


@api_view(['POST'])
@permission_classes([IsSalesStaff])
def staff_reject_ticket(request, id):
    serializer = RejectTicketSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    ticket = execute(serializer.to_command(id), actor=request.user)
    return _detail_response(ticket)


# ==============================================================================
# OPERATIONS
# ==============================================================================

class OperationsQueueView(generics.ListAPIView):
    """In-progress tickets waiting on goods, un-received first."""
    permission_classes = [IsOperationsStaff]
    serializer_class = StaffTicketListSerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['resolution_type']

    def get_queryset(self):
        return AfterSalesTicket.objects.operations_queue().with_summary()


class OperationsTicketDetailView(generics.RetrieveAPIView):
    permission_classes = [IsOperationsStaff]
    serializer_class = TicketDetailSerializer
    lookup_field = 'id'

    def get_queryset(self):
        return AfterSalesTicket.objects.with_detail()


@api_view(['POST'])
@permission_classes([IsOperationsStaff])
def receive_goods(request, id):
    ticket = execute(ReceiveGoods(ticket_id=id), actor=request.user)
    return _detail_response(ticket)


@api_view(['POST'])
@permission_classes([IsOperationsStaff])
def inspect_ticket(request, id):
    """
    Accept or reject received goods.

    Acceptance applies the resolution: restock and refund, ship a
    replacement, or resolve a repair.
    """
    serializer = InspectTicketSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    ticket = execute(serializer.to_command(id), actor=request.user)
    return _detail_response(ticket)


@api_view(['POST'])
@permission_classes([IsOperationsStaff])
def operations_reject_ticket(request, id):
    serializer = RejectTicketSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    ticket = execute(serializer.to_command(id), actor=request.user)
    return _detail_response(ticket)

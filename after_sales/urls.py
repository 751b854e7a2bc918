"""
URL configuration for after-sales endpoints.

Each surface is mounted under its own prefix in core/urls.py.
"""

from django.urls import path

from . import views

customer_urlpatterns = [
    path('', views.CustomerTicketListCreateView.as_view(), name='customer-ticket-list'),
    path('<uuid:id>/', views.CustomerTicketDetailView.as_view(), name='customer-ticket-detail'),
]

staff_urlpatterns = [
    path('', views.StaffTicketListView.as_view(), name='staff-ticket-list'),
    path('<uuid:id>/', views.StaffTicketDetailView.as_view(), name='staff-ticket-detail'),
    path('<uuid:id>/approve/', views.approve_ticket, name='staff-ticket-approve'),
    path('<uuid:id>/reject/', views.staff_reject_ticket, name='staff-ticket-reject'),
]

operations_urlpatterns = [
    path('', views.OperationsQueueView.as_view(), name='operations-queue'),
    path('<uuid:id>/', views.OperationsTicketDetailView.as_view(), name='operations-ticket-detail'),
    path('<uuid:id>/receive/', views.receive_goods, name='operations-ticket-receive'),
    path('<uuid:id>/inspect/', views.inspect_ticket, name='operations-ticket-inspect'),
    path('<uuid:id>/reject/', views.operations_reject_ticket, name='operations-ticket-reject'),
]

"""
URL configuration for the eyewear after-sales backend.
"""
from django.contrib import admin
from django.urls import path, include

from after_sales.urls import customer_urlpatterns as after_sales_customer_urls
from after_sales.urls import operations_urlpatterns as after_sales_operations_urls
from after_sales.urls import staff_urlpatterns as after_sales_staff_urls

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/auth/', include('accounts.urls')),
    path('api/me/after-sales/', include((after_sales_customer_urls, 'customer_after_sales'))),  # Customer claims
    path('api/staff/after-sales/', include((after_sales_staff_urls, 'staff_after_sales'))),  # Sales review
    path('api/operations/after-sales/', include((after_sales_operations_urls, 'operations_after_sales'))),  # Goods handling
]

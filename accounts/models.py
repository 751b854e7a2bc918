from django.contrib.auth.models import AbstractUser
from django.db import models
import uuid


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    The role decides which after-sales surface the user may act on:
    customers submit claims, sales staff approve or reject them, and
    operations staff receive and inspect returned goods.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class UserRole(models.TextChoices):
        CUSTOMER = 'CUSTOMER', 'Customer'
        SALES_STAFF = 'SALES_STAFF', 'Sales Staff'
        OPERATIONS_STAFF = 'OPERATIONS_STAFF', 'Operations Staff'
        MANAGER = 'MANAGER', 'Manager'

    role = models.CharField(
        max_length=30,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        db_index=True,
        help_text="User's primary role in the system"
    )

    phone = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'users'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.get_full_name() or self.username} ({self.get_role_display()})"

    @property
    def is_customer(self):
        return self.role == self.UserRole.CUSTOMER

    @property
    def is_sales_staff(self):
        return self.role in (self.UserRole.SALES_STAFF, self.UserRole.MANAGER) or self.is_superuser

    @property
    def is_operations_staff(self):
        return self.role in (self.UserRole.OPERATIONS_STAFF, self.UserRole.MANAGER) or self.is_superuser

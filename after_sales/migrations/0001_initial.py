# Generated manually for the after_sales app
import django.db.models.deletion
import django.utils.timezone
import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('orders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PolicyConfiguration',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('claim_type', models.CharField(choices=[('return', 'Return'), ('warranty', 'Warranty'), ('refund', 'Refund')], db_index=True, max_length=20)),
                ('policy_name', models.CharField(max_length=200)),
                ('return_window_days', models.PositiveIntegerField(blank=True, help_text='Days after delivery during which returns are accepted', null=True)),
                ('warranty_months', models.PositiveIntegerField(blank=True, help_text='Months after delivery covered by warranty', null=True)),
                ('refund_allowed', models.BooleanField(default=True)),
                ('customized_lens_refundable', models.BooleanField(default=False, help_text='Whether prescription (customised) orders can be refunded')),
                ('evidence_required', models.BooleanField(default=True)),
                ('min_order_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('effective_from', models.DateTimeField(default=django.utils.timezone.now)),
                ('effective_to', models.DateTimeField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'policy_configurations',
                'ordering': ['claim_type', '-effective_from'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_active', True), ('is_deleted', False)), fields=('claim_type',), name='one_active_policy_per_claim_type'),
                    models.CheckConstraint(
                        condition=(
                            (~models.Q(claim_type='return') & models.Q(return_window_days__isnull=True)) |
                            (models.Q(claim_type='return') & models.Q(return_window_days__isnull=False))
                        ),
                        name='policy_return_window_matches_type',
                    ),
                    models.CheckConstraint(
                        condition=(
                            (~models.Q(claim_type='warranty') & models.Q(warranty_months__isnull=True)) |
                            (models.Q(claim_type='warranty') & models.Q(warranty_months__isnull=False))
                        ),
                        name='policy_warranty_months_matches_type',
                    ),
                    models.CheckConstraint(condition=models.Q(('effective_to__isnull', True), ('effective_to__gte', models.F('effective_from')), _connector='OR'), name='policy_effective_range_valid'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AfterSalesTicket',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('claim_type', models.CharField(choices=[('return', 'Return'), ('warranty', 'Warranty'), ('refund', 'Refund')], max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('in_progress', 'In Progress'), ('resolved', 'Resolved'), ('rejected', 'Rejected'), ('closed', 'Closed')], default='pending', max_length=20)),
                ('reason', models.TextField()),
                ('requested_action', models.CharField(blank=True, max_length=500, null=True)),
                ('refund_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('evidence_required', models.BooleanField(default=True)),
                ('policy_violation', models.TextField(blank=True, null=True)),
                ('resolution_type', models.CharField(blank=True, choices=[('refund_only', 'Refund Only'), ('return_and_refund', 'Return and Refund'), ('warranty_repair', 'Warranty Repair'), ('warranty_replace', 'Warranty Replace')], max_length=30, null=True)),
                ('staff_notes', models.TextField(blank=True, null=True)),
                ('received_at', models.DateTimeField(blank=True, null=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='after_sales_tickets', to='orders.order')),
                ('order_item', models.ForeignKey(blank=True, help_text='Null for a claim on the whole order', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='after_sales_tickets', to='orders.orderitem')),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='after_sales_tickets', to=settings.AUTH_USER_MODEL)),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_after_sales_tickets', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'after_sales_tickets',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['customer', '-created_at'], name='ticket_customer_created_idx'),
                    models.Index(fields=['status', '-created_at'], name='ticket_status_created_idx'),
                    models.Index(fields=['order', 'claim_type'], name='ticket_order_claim_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=(
                            models.Q(resolution_type__isnull=True) |
                            models.Q(claim_type='refund', resolution_type__in=['refund_only']) |
                            models.Q(claim_type='return', resolution_type__in=['return_and_refund']) |
                            models.Q(claim_type='warranty', resolution_type__in=['warranty_repair', 'warranty_replace'])
                        ),
                        name='ticket_resolution_matches_claim',
                    ),
                    models.CheckConstraint(condition=(~models.Q(status='pending') | models.Q(resolution_type__isnull=True)), name='ticket_pending_has_no_resolution'),
                    models.CheckConstraint(condition=(models.Q(refund_amount__isnull=True) | models.Q(refund_amount__gt=Decimal('0'))), name='ticket_refund_amount_positive'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'in_progress'])), fields=('order', 'order_item', 'claim_type'), name='one_open_ticket_per_claim'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TicketAttachment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('file_name', models.CharField(max_length=255)),
                ('file_url', models.CharField(max_length=1000)),
                ('file_extension', models.CharField(blank=True, max_length=20, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('ticket', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attachments', to='after_sales.aftersalesticket')),
            ],
            options={
                'db_table': 'after_sales_ticket_attachments',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='TicketAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('operation', models.CharField(db_index=True, help_text='e.g., submit, approve, receive, inspect, reject', max_length=50)),
                ('previous_state', models.JSONField(blank=True, default=dict)),
                ('new_state', models.JSONField(blank=True, default=dict)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('ticket', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='after_sales.aftersalesticket')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'after_sales_audit_logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['ticket', '-created_at'], name='ticket_audit_ticket_idx'),
                    models.Index(fields=['operation', '-created_at'], name='ticket_audit_operation_idx'),
                ],
            },
        ),
    ]

# Generated manually for the after_sales app
import django.db.models.functions.comparison
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('after_sales', '0001_initial'),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name='aftersalesticket',
            name='one_open_ticket_per_claim',
        ),
        migrations.AddConstraint(
            model_name='aftersalesticket',
            constraint=models.UniqueConstraint(
                models.F('order'),
                django.db.models.functions.comparison.Coalesce(
                    'order_item', 'order', output_field=models.UUIDField()
                ),
                models.F('claim_type'),
                condition=models.Q(('status__in', ['pending', 'in_progress'])),
                name='one_open_ticket_per_claim',
            ),
        ),
    ]

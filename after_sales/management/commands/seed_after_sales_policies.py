"""
Seed After-Sales Policies

Creates the default return, warranty and refund policies for any claim type
that has no active policy yet. Existing policies are left untouched.

Usage:
    python manage.py seed_after_sales_policies
"""

from django.core.management.base import BaseCommand

from after_sales.models import ClaimType, PolicyConfiguration

DEFAULT_POLICIES = {
    ClaimType.RETURN: {
        'policy_name': 'Standard Return Policy',
        'return_window_days': 7,
        'evidence_required': True,
    },
    ClaimType.WARRANTY: {
        'policy_name': 'Standard Warranty Policy',
        'warranty_months': 6,
        'evidence_required': True,
    },
    ClaimType.REFUND: {
        'policy_name': 'Standard Refund Policy',
        'refund_allowed': True,
        'customized_lens_refundable': False,
        'evidence_required': True,
    },
}


class Command(BaseCommand):
    help = 'Create default after-sales policies where none is active'

    def handle(self, *args, **options):
        created = 0
        for claim_type, values in DEFAULT_POLICIES.items():
            existing = PolicyConfiguration.objects.live().filter(claim_type=claim_type).first()
            if existing:
                self.stdout.write(
                    self.style.WARNING(f'{claim_type.label}: "{existing.policy_name}" already active, skipped')
                )
                continue

            policy = PolicyConfiguration.objects.create(claim_type=claim_type, **values)
            created += 1
            self.stdout.write(self.style.SUCCESS(f'{claim_type.label}: created "{policy.policy_name}"'))

        self.stdout.write('')
        self.stdout.write(self.style.SUCCESS(f'{created} policy configuration(s) created.'))
        if created:
            self.stdout.write('To modify policies, go to: Django Admin > After-Sales > Policy configurations')

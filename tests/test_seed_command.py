"""
Tests for the seed_after_sales_policies management command.
"""

import pytest
from io import StringIO

from django.core.management import call_command

from after_sales.models import ClaimType, PolicyConfiguration


def _seed():
    out = StringIO()
    call_command('seed_after_sales_policies', stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestSeedAfterSalesPolicies:

    def test_creates_one_live_policy_per_claim_type(self):
        output = _seed()

        assert '3 policy configuration(s) created.' in output
        policies = {p.claim_type: p for p in PolicyConfiguration.objects.live()}
        assert set(policies) == {ClaimType.RETURN, ClaimType.WARRANTY, ClaimType.REFUND}
        assert policies[ClaimType.RETURN].return_window_days == 7
        assert policies[ClaimType.WARRANTY].warranty_months == 6
        assert policies[ClaimType.REFUND].refund_allowed is True
        assert policies[ClaimType.REFUND].customized_lens_refundable is False
        assert all(p.evidence_required for p in policies.values())

    def test_second_run_creates_nothing(self):
        _seed()

        output = _seed()

        assert '0 policy configuration(s) created.' in output
        assert PolicyConfiguration.objects.count() == 3

    def test_existing_policy_is_left_alone(self, return_policy):
        output = _seed()

        assert 'Return: "Standard Return Policy" already active, skipped' in output
        assert '2 policy configuration(s) created.' in output
        assert PolicyConfiguration.objects.filter(claim_type=ClaimType.RETURN).get() == return_policy

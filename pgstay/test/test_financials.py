# test/test_financials.py - Bill and payment effects on the accommodation ledger

from datetime import datetime, timezone

import pytest

from pgstay.models.tenant import Accommodation, Bill, Tenant
from pgstay.services import financials
from pgstay.utils.exceptions import NotFoundError, ValidationError

PAID_AT = datetime(2026, 6, 5, tzinfo=timezone.utc)


def make_tenant() -> Tenant:
    return Tenant(
        _id="t-1",
        tenantId="TENANT-AB12CD34",
        landlordId="landlord-001",
        name="Ravi",
        mobile="9876543210",
        accommodations=[
            Accommodation(
                landlord_id="landlord-001",
                property_id="PROP1001",
                property_name="Sunrise PG",
                room_id="PROP1001-R1",
                bed_id="PROP1001-R1-B1",
                local_tenant_id="L-ord-001-0001",
                rent_amount=4000,
            )
        ],
    )


def make_bill(bill_id: str, amount: float, bill_type: str = "Rent", bed_id: str = "PROP1001-R1-B1") -> Bill:
    return Bill(
        bill_id=bill_id,
        bill_number=f"BILL-202606-{bill_id}",
        landlord_id="landlord-001",
        property_id="PROP1001",
        room_id="PROP1001-R1",
        bed_id=bed_id,
        type=bill_type,
        month=6,
        year=2026,
        amount=amount,
        due_date=PAID_AT,
    )


class TestApplyBill:
    def test_bill_raises_dues(self):
        tenant = make_tenant()
        financials.apply_bill(tenant, make_bill("b1", 4000))
        financials.apply_bill(tenant, make_bill("b2", 350.5, "Electricity"))

        assert tenant.accommodations[0].pending_dues == 4350.5
        assert len(tenant.bills) == 2

    def test_bill_requires_active_accommodation(self):
        tenant = make_tenant()
        with pytest.raises(NotFoundError):
            financials.apply_bill(tenant, make_bill("b1", 100, bed_id="PROP1001-R1-B2"))
        assert tenant.bills == []

    def test_bill_from_another_landlord_refused(self):
        tenant = make_tenant()
        bill = make_bill("b1", 100)
        bill.landlord_id = "landlord-999"
        with pytest.raises(NotFoundError):
            financials.apply_bill(tenant, bill)


class TestApplyPayment:
    @pytest.fixture
    def billed_tenant(self):
        tenant = make_tenant()
        financials.apply_bill(tenant, make_bill("b1", 4000))
        financials.apply_bill(tenant, make_bill("b2", 500, "Electricity"))
        return tenant

    def test_payment_moves_dues_and_collection_together(self, billed_tenant):
        settled = financials.apply_payment(billed_tenant, ["b1"], "landlord-001", PAID_AT, payment_method="UPI")

        acc = billed_tenant.accommodations[0]
        assert acc.pending_dues == 500
        assert acc.monthly_collection == 4000
        bill, _ = settled[0]
        assert bill.paid and bill.paid_amount == 4000 and bill.paid_date == PAID_AT
        assert bill.payment_method == "UPI"

    def test_bill_number_is_accepted(self, billed_tenant):
        financials.apply_payment(billed_tenant, ["BILL-202606-b2"], "landlord-001", PAID_AT)
        assert billed_tenant.find_bill("b2").paid

    def test_any_bad_id_rejects_the_whole_payment(self, billed_tenant):
        with pytest.raises(ValidationError) as exc_info:
            financials.apply_payment(billed_tenant, ["b1", "missing"], "landlord-001", PAID_AT)

        assert exc_info.value.errors == ["billIds: missing not found"]
        assert not billed_tenant.find_bill("b1").paid
        assert billed_tenant.accommodations[0].pending_dues == 4500

    def test_already_paid_bill_rejected(self, billed_tenant):
        financials.apply_payment(billed_tenant, ["b1"], "landlord-001", PAID_AT)
        with pytest.raises(ValidationError) as exc_info:
            financials.apply_payment(billed_tenant, ["b1", "b2"], "landlord-001", PAID_AT)
        assert exc_info.value.errors == ["billIds: b1 is already paid"]
        assert not billed_tenant.find_bill("b2").paid

    def test_paid_amount_must_match_total(self, billed_tenant):
        with pytest.raises(ValidationError):
            financials.apply_payment(billed_tenant, ["b1", "b2"], "landlord-001", PAID_AT, paid_amount=4000)
        settled = financials.apply_payment(billed_tenant, ["b1", "b2"], "landlord-001", PAID_AT, paid_amount=4500)
        assert len(settled) == 2

    def test_other_landlord_cannot_settle(self, billed_tenant):
        with pytest.raises(ValidationError):
            financials.apply_payment(billed_tenant, ["b1"], "landlord-999", PAID_AT)

    def test_amounts_grouped_per_ledger(self, billed_tenant):
        settled = financials.apply_payment(billed_tenant, ["b1", "b2"], None, PAID_AT)
        assert financials.amounts_by_ledger(settled) == {("PROP1001", "PROP1001-R1", "PROP1001-R1-B1"): 4500}


class TestDuesSummary:
    def test_summary(self):
        tenant = make_tenant()
        financials.apply_bill(tenant, make_bill("b1", 4000))
        financials.apply_bill(tenant, make_bill("b2", 500, "Electricity"))
        financials.apply_bill(tenant, make_bill("b3", 250, "Electricity"))
        financials.apply_payment(tenant, ["b1"], None, PAID_AT)

        summary = financials.dues_summary(tenant)

        assert summary["totalDues"] == 750
        assert summary["duesByType"] == {"Electricity": 750}
        assert [b["billId"] for b in summary["unpaidBills"]] == ["b2", "b3"]
        assert summary["properties"][0]["pendingDues"] == 750

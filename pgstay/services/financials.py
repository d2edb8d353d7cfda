"""
Bill and payment effects on a tenant's accommodation ledger.

Both functions validate everything they need before touching the tenant,
so a rejected call leaves the model unchanged, and a successful call moves
pendingDues and monthlyCollection together. Persisting the tenant in one
version-checked write makes each bill/payment all-or-nothing.
"""
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pgstay.models.tenant import Accommodation, Bill, Tenant
from pgstay.utils.exceptions import NotFoundError, ValidationError
from pgstay.utils.helpers import money, money_sum

LedgerKey = Tuple[str, str, Optional[str]]


def ledger_key(item) -> LedgerKey:
    return (item.property_id, item.room_id, item.bed_id)


def accommodation_for_bill(tenant: Tenant, bill: Bill) -> Optional[Accommodation]:
    """The active accommodation a bill belongs to, else the latest past one."""
    matches = [a for a in tenant.accommodations if a.occupies(*ledger_key(bill))]
    if not matches:
        return None
    active = [a for a in matches if a.is_active]
    if active:
        return active[0]
    return max(matches, key=lambda a: a.move_in_date)


def apply_bill(tenant: Tenant, bill: Bill) -> Accommodation:
    accommodation = tenant.active_accommodation(*ledger_key(bill))
    if accommodation is None or accommodation.landlord_id != bill.landlord_id:
        raise NotFoundError(
            f"Tenant {tenant.tenant_id} has no active accommodation at "
            f"{bill.property_id}/{bill.room_id}" + (f"/{bill.bed_id}" if bill.bed_id else "")
        )
    tenant.bills.append(bill)
    accommodation.pending_dues = money(accommodation.pending_dues + bill.amount)
    return accommodation


def apply_payment(
    tenant: Tenant,
    bill_ids: List[str],
    landlord_id: Optional[str],
    paid_at: datetime,
    payment_method: Optional[str] = None,
    paid_amount: Optional[float] = None,
) -> List[Tuple[Bill, Accommodation]]:
    """
    Settle bills in full. Every bill must exist, be unpaid, belong to the
    landlord (unless `landlord_id` is None) and resolve to an accommodation.
    """
    errors: List[str] = []
    resolved: List[Tuple[Bill, Accommodation]] = []
    seen = set()
    for bill_id in bill_ids:
        if bill_id in seen:
            errors.append(f"billIds: {bill_id} listed twice")
            continue
        seen.add(bill_id)
        bill = tenant.find_bill(bill_id)
        if bill is None or (landlord_id is not None and bill.landlord_id != landlord_id):
            errors.append(f"billIds: {bill_id} not found")
        elif bill.paid:
            errors.append(f"billIds: {bill_id} is already paid")
        else:
            accommodation = accommodation_for_bill(tenant, bill)
            if accommodation is None:
                errors.append(f"billIds: {bill_id} has no matching accommodation")
            else:
                resolved.append((bill, accommodation))
    if errors:
        raise ValidationError("Payment rejected", errors)

    total = money_sum(bill.amount for bill, _ in resolved)
    if paid_amount is not None and money(paid_amount) != total:
        raise ValidationError(
            "Payment rejected",
            [f"paidAmount: {money(paid_amount)} does not match the bills total {total}"],
        )

    for bill, accommodation in resolved:
        bill.paid = True
        bill.paid_date = paid_at
        bill.paid_amount = bill.amount
        bill.payment_method = payment_method
        accommodation.pending_dues = money(accommodation.pending_dues - bill.amount)
        accommodation.monthly_collection = money(accommodation.monthly_collection + bill.amount)
    return resolved


def amounts_by_ledger(settled: List[Tuple[Bill, Accommodation]]) -> Dict[LedgerKey, float]:
    grouped: Dict[LedgerKey, List[float]] = defaultdict(list)
    for bill, _ in settled:
        grouped[ledger_key(bill)].append(bill.amount)
    return {key: money_sum(amounts) for key, amounts in grouped.items()}


def dues_summary(tenant: Tenant) -> Dict[str, Any]:
    unpaid = [b for b in tenant.bills if not b.paid]
    by_type: Dict[str, List[float]] = defaultdict(list)
    for bill in unpaid:
        by_type[bill.type].append(bill.amount)

    by_property: Dict[str, Dict[str, Any]] = {}
    for acc in tenant.accommodations:
        if not acc.is_active and not acc.pending_dues:
            continue
        entry = by_property.setdefault(acc.property_id, {
            "propertyId": acc.property_id,
            "propertyName": acc.property_name,
            "landlordId": acc.landlord_id,
            "pendingDues": 0.0,
            "accommodations": [],
        })
        entry["pendingDues"] = money(entry["pendingDues"] + acc.pending_dues)
        entry["accommodations"].append({
            "roomId": acc.room_id,
            "bedId": acc.bed_id,
            "localTenantId": acc.local_tenant_id,
            "isActive": acc.is_active,
            "rentAmount": acc.rent_amount,
            "pendingDues": acc.pending_dues,
            "monthlyCollection": acc.monthly_collection,
        })

    return {
        "tenantId": tenant.tenant_id,
        "totalDues": money_sum(b.amount for b in unpaid),
        "duesByType": {bill_type: money_sum(v) for bill_type, v in by_type.items()},
        "unpaidBills": [b.model_dump(by_alias=True) for b in sorted(unpaid, key=lambda b: b.due_date)],
        "properties": list(by_property.values()),
    }

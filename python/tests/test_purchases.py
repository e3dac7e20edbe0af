"""Tests for purchase recording and verification payload parsing.

Tests cover:
- Upsert creates one row per (user, case) and a repeat write supersedes it
- Amounts are stored to the cent
- Fallback notes are stored and cleared by a later verified write
- Payload validation order and messages
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from casefile.db.models import UserPurchase
from casefile.services.purchases import (
    FALLBACK_NOTE,
    InvalidVerificationError,
    list_purchases,
    parse_verification_payload,
    purchase_to_dict,
    record_verified_payment,
    upsert_purchase,
)


def count_purchases(db, user_id) -> int:
    return db.scalar(
        select(func.count()).select_from(UserPurchase).where(UserPurchase.user_id == user_id)
    )


class TestUpsertPurchase:
    def test_insert(self, db_session, cases):
        user_id = uuid4()

        purchase = upsert_purchase(
            db_session,
            user_id=user_id,
            case_id="case-001",
            payment_id="ORDER-1",
            amount=Decimal("9.99"),
        )

        assert purchase.user_id == user_id
        assert purchase.payment_id == "ORDER-1"
        assert purchase.amount == Decimal("9.99")
        assert purchase.verified_at is not None
        assert purchase.notes is None

    def test_repeat_write_supersedes(self, db_session, cases):
        user_id = uuid4()
        first = upsert_purchase(
            db_session, user_id=user_id, case_id="case-001", payment_id="ORDER-1", amount=9.99
        )
        first_id = first.id

        second = upsert_purchase(
            db_session, user_id=user_id, case_id="case-001", payment_id="ORDER-2", amount=9.99
        )

        assert count_purchases(db_session, user_id) == 1
        assert second.id == first_id
        assert second.payment_id == "ORDER-2"

    def test_amount_quantized(self, db_session, cases):
        purchase = upsert_purchase(
            db_session,
            user_id=uuid4(),
            case_id="case-002",
            payment_id="ORDER-3",
            amount=Decimal("14.99"),
        )

        assert purchase.amount == Decimal("14.99")
        assert purchase_to_dict(purchase)["amount"] == 14.99

    def test_fallback_note_cleared_by_verified_write(self, db_session, cases):
        user_id = uuid4()
        degraded = upsert_purchase(
            db_session,
            user_id=user_id,
            case_id="case-001",
            payment_id="ORDER-1",
            amount=Decimal("9.99"),
            note=FALLBACK_NOTE,
        )
        assert degraded.notes == FALLBACK_NOTE

        verified = upsert_purchase(
            db_session,
            user_id=user_id,
            case_id="case-001",
            payment_id="ORDER-1",
            amount=Decimal("9.99"),
        )

        assert verified.notes is None

    def test_record_verified_payment_commits(self, db_session, cases):
        payment = parse_verification_payload(
            {"orderId": "ORDER-9", "userId": str(uuid4()), "caseId": "case-001", "amount": 9.99}
        )

        purchase = record_verified_payment(db_session, payment)

        assert purchase.payment_id == "ORDER-9"
        assert count_purchases(db_session, payment.user_id) == 1

    def test_list_purchases(self, db_session, cases):
        user_id = uuid4()
        for case_id in ("case-001", "case-002"):
            upsert_purchase(
                db_session,
                user_id=user_id,
                case_id=case_id,
                payment_id=f"ORDER-{case_id}",
                amount=Decimal("1.00"),
            )
        upsert_purchase(
            db_session, user_id=uuid4(), case_id="case-001", payment_id="X", amount=Decimal("1")
        )

        purchases = list_purchases(db_session, user_id)

        assert sorted(p.case_id for p in purchases) == ["case-001", "case-002"]


class TestParseVerificationPayload:
    def valid(self, **overrides):
        body = {
            "orderId": "ORDER-1",
            "userId": str(uuid4()),
            "caseId": "case-001",
            "amount": 9.99,
        }
        body.update(overrides)
        return body

    def test_valid(self):
        body = self.valid()

        payment = parse_verification_payload(body)

        assert payment.order_id == "ORDER-1"
        assert str(payment.user_id) == body["userId"]
        assert payment.case_id == "case-001"
        assert payment.amount == Decimal("9.99")

    def test_amount_as_string(self):
        assert parse_verification_payload(self.valid(amount="14.99")).amount == Decimal("14.99")

    @pytest.mark.parametrize("field", ["orderId", "userId", "caseId", "amount"])
    def test_missing_field(self, field):
        body = self.valid()
        del body[field]

        with pytest.raises(InvalidVerificationError) as exc_info:
            parse_verification_payload(body)

        assert exc_info.value.message == f"Missing required parameter: {field}"

    def test_first_missing_field_reported(self):
        with pytest.raises(InvalidVerificationError, match="orderId"):
            parse_verification_payload({})

    def test_zero_amount_counts_as_missing(self):
        with pytest.raises(InvalidVerificationError, match="Missing required parameter: amount"):
            parse_verification_payload(self.valid(amount=0))

    @pytest.mark.parametrize(
        "amount", ["abc", "NaN", "Infinity", True, 1e30, "100000000", -5, "0.00"]
    )
    def test_invalid_amount(self, amount):
        with pytest.raises(InvalidVerificationError) as exc_info:
            parse_verification_payload(self.valid(amount=amount))

        assert exc_info.value.message == "Invalid amount: must be a number"

    def test_invalid_user_id(self):
        with pytest.raises(InvalidVerificationError, match="Invalid parameter: userId"):
            parse_verification_payload(self.valid(userId="user-123"))

    def test_non_object_body(self):
        with pytest.raises(InvalidVerificationError, match="orderId"):
            parse_verification_payload(["not", "an", "object"])

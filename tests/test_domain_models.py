"""
Tests for domain models.

Dataclass validation, submission result invariants and the state machine
terminal set.
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.models.api import ErrorKind, Platform, PurchaseStatus
from app.models.domain import (
    CatalogItemData,
    PurchaseClaim,
    PurchaseData,
    PurchaseIntent,
    RestoreSummary,
    SubmissionResult,
    SubmissionState,
)


def _purchase() -> PurchaseData:
    return PurchaseData(
        purchase_id=uuid4(),
        transaction_id="tx-1",
        user_id="user-1",
        catalog_item_id=uuid4(),
        product_id="issue-42",
        price_minor=1200,
        currency="KRW",
        platform=Platform.APP_STORE,
        status=PurchaseStatus.VERIFIED,
        verified_at=datetime.now(UTC),
    )


class TestCatalogItemData:
    def test_valid(self):
        item = CatalogItemData(
            catalog_item_id=uuid4(),
            product_id="issue-42",
            title="Issue #42",
            price_minor=0,
            currency="KRW",
            purchasable=True,
        )
        assert item.price_minor == 0

    def test_negative_price(self):
        with pytest.raises(ValueError, match="Price cannot be negative"):
            CatalogItemData(
                catalog_item_id=uuid4(),
                product_id="issue-42",
                title="Issue #42",
                price_minor=-1,
                currency="KRW",
                purchasable=True,
            )

    def test_empty_product_id(self):
        with pytest.raises(ValueError, match="product_id cannot be empty"):
            CatalogItemData(
                catalog_item_id=uuid4(),
                product_id="",
                title="Issue #42",
                price_minor=100,
                currency="KRW",
                purchasable=True,
            )

    def test_frozen(self):
        item = CatalogItemData(
            catalog_item_id=uuid4(),
            product_id="issue-42",
            title="Issue #42",
            price_minor=100,
            currency="KRW",
            purchasable=True,
        )
        with pytest.raises(AttributeError):
            item.price_minor = 0  # type: ignore[misc]


class TestPurchaseClaim:
    @pytest.mark.parametrize("field", ["transaction_id", "product_id", "raw_proof"])
    def test_required_fields(self, field):
        values = {
            "transaction_id": "tx-1",
            "product_id": "issue-42",
            "raw_proof": "proof",
        }
        values[field] = ""
        with pytest.raises(ValueError, match=f"{field} cannot be empty"):
            PurchaseClaim(platform=Platform.GOOGLE_PLAY, **values)

    def test_optional_fields_default_none(self):
        claim = PurchaseClaim(
            transaction_id="tx-1",
            product_id="issue-42",
            raw_proof="proof",
            platform=Platform.APP_STORE,
        )
        assert claim.catalog_item_id is None
        assert claim.claimed_price_minor is None
        assert claim.claimed_currency is None


class TestPurchaseIntent:
    def test_requires_user(self):
        with pytest.raises(ValueError, match="user_id cannot be empty"):
            PurchaseIntent(
                user_id="",
                catalog_item_id=uuid4(),
                product_id="issue-42",
                price_minor=100,
                currency="KRW",
                platform=Platform.APP_STORE,
                verified_at=datetime.now(UTC),
            )

    @given(price=st.integers(min_value=0, max_value=10**12))
    def test_any_non_negative_price(self, price):
        intent = PurchaseIntent(
            user_id="user-1",
            catalog_item_id=uuid4(),
            product_id="issue-42",
            price_minor=price,
            currency="KRW",
            platform=Platform.GOOGLE_PLAY,
            verified_at=datetime.now(UTC),
        )
        assert intent.price_minor == price

    @given(currency=st.text(max_size=6).filter(lambda c: len(c) != 3))
    def test_currency_must_be_three_letters(self, currency):
        with pytest.raises(ValueError, match="Invalid currency code"):
            PurchaseIntent(
                user_id="user-1",
                catalog_item_id=uuid4(),
                product_id="issue-42",
                price_minor=100,
                currency=currency,
                platform=Platform.GOOGLE_PLAY,
                verified_at=datetime.now(UTC),
            )


class TestSubmissionResult:
    def test_success_requires_purchase(self):
        with pytest.raises(ValueError, match="requires a purchase"):
            SubmissionResult(success=True, state=SubmissionState.RECORDED)

    def test_failure_requires_error_kind(self):
        with pytest.raises(ValueError, match="requires an error kind"):
            SubmissionResult(success=False, state=SubmissionState.NOT_FOUND)

    def test_success(self):
        result = SubmissionResult(
            success=True, state=SubmissionState.RECORDED, purchase=_purchase()
        )
        assert result.retryable is False
        assert result.already_recorded is False

    @pytest.mark.parametrize(
        ("error_kind", "retryable"),
        [
            (ErrorKind.TRANSIENT, True),
            (ErrorKind.NOT_FOUND, False),
            (ErrorKind.PRODUCT_MISMATCH, False),
            (ErrorKind.VERIFICATION_ERROR, False),
            (ErrorKind.UNAUTHORIZED, False),
        ],
    )
    def test_retryable_only_for_transient(self, error_kind, retryable):
        result = SubmissionResult(
            success=False, state=SubmissionState.UNAVAILABLE, error_kind=error_kind
        )
        assert result.retryable is retryable


class TestSubmissionState:
    @pytest.mark.parametrize(
        "state",
        [
            SubmissionState.RECEIVED,
            SubmissionState.DUPLICATE_CHECK,
            SubmissionState.CATALOG_LOOKUP,
            SubmissionState.VERIFYING,
            SubmissionState.PRODUCT_MATCH_CHECK,
            SubmissionState.RECORDING,
        ],
    )
    def test_intermediate_states(self, state):
        assert state.is_terminal is False

    @pytest.mark.parametrize(
        "state",
        [
            SubmissionState.ALREADY_RECORDED,
            SubmissionState.NOT_FOUND,
            SubmissionState.VERIFICATION_FAILED,
            SubmissionState.MISMATCH,
            SubmissionState.RECORDED,
            SubmissionState.UNAVAILABLE,
            SubmissionState.REJECTED,
        ],
    )
    def test_terminal_states(self, state):
        assert state.is_terminal is True


class TestRestoreSummary:
    @given(
        restored=st.integers(min_value=0, max_value=1000),
        failed=st.integers(min_value=0, max_value=1000),
    )
    def test_total(self, restored, failed):
        summary = RestoreSummary(restored_count=restored, failed_count=failed)
        assert summary.total == restored + failed

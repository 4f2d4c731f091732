"""
Google Play domain models - Immutable dataclasses for purchase verification.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

PURCHASE_STATE_NAMES = {0: "purchased", 1: "canceled", 2: "pending"}


@dataclass(frozen=True)
class GooglePlayPurchaseToken:
    """Validated Google Play purchase token."""

    token: str
    product_id: str
    package_name: str

    def __post_init__(self) -> None:
        """Validate purchase token fields."""
        if not self.token or len(self.token) < 10:
            raise ValueError("Invalid purchase token")
        if not self.product_id:
            raise ValueError("Product ID required")
        if not self.package_name:
            raise ValueError("Package name required")


@dataclass(frozen=True)
class GooglePlayPurchaseVerification:
    """Result of a purchases.products.get query."""

    order_id: str | None
    purchase_token: str
    product_id: str
    package_name: str
    purchase_time_millis: int
    purchase_state: int  # 0: purchased, 1: canceled, 2: pending
    acknowledgement_state: int  # 0: not acknowledged, 1: acknowledged
    purchase_type: int | None = None  # None: real, 0: test, 1: promo, 2: rewarded

    @classmethod
    def from_response(
        cls, response: dict[str, Any], purchase_token: GooglePlayPurchaseToken
    ) -> "GooglePlayPurchaseVerification":
        """
        Build from the androidpublisher ProductPurchase resource.

        Raises:
            KeyError: purchaseState is missing
        """
        purchase_type = response.get("purchaseType")
        return cls(
            order_id=response.get("orderId"),
            purchase_token=purchase_token.token,
            product_id=response.get("productId") or purchase_token.product_id,
            package_name=purchase_token.package_name,
            purchase_time_millis=int(response.get("purchaseTimeMillis", 0)),
            purchase_state=int(response["purchaseState"]),
            acknowledgement_state=int(response.get("acknowledgementState", 0)),
            purchase_type=int(purchase_type) if purchase_type is not None else None,
        )

    def is_valid(self) -> bool:
        """Only the purchased state grants access."""
        return self.purchase_state == 0

    def is_test_purchase(self) -> bool:
        """Check if this is a test purchase (license tester account)."""
        return self.purchase_type == 0

    @property
    def purchase_state_name(self) -> str:
        return PURCHASE_STATE_NAMES.get(self.purchase_state, f"unknown({self.purchase_state})")

    @property
    def purchased_at(self) -> datetime | None:
        if not self.purchase_time_millis:
            return None
        return datetime.fromtimestamp(self.purchase_time_millis / 1000, tz=UTC)

"""
Apple StoreKit domain models - Immutable dataclasses for purchase verification.

NO DICTIONARIES - All data uses strongly typed models.

StoreKit 2 delivers each transaction to the device as a JWS (JSON Web
Signature) signed by Apple; the payload is verified offline.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


def _from_millis(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


@dataclass(frozen=True)
class AppleTransactionInfo:
    """Verified Apple StoreKit transaction information.

    This represents a decoded JWS transaction whose signature and
    certificate chain have already been checked.
    """

    transaction_id: str
    original_transaction_id: str
    product_id: str
    bundle_id: str
    purchase_date: datetime
    signed_date: datetime
    type: str  # "Consumable", "Non-Consumable", ...
    environment: str  # "Production" or "Sandbox"

    # Optional fields
    app_account_token: str | None = None
    in_app_ownership_type: str | None = None
    revocation_date: datetime | None = None
    revocation_reason: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AppleTransactionInfo":
        """Parse a verified payload. Raises KeyError/ValueError on malformed data."""
        purchase_date = _from_millis(payload["purchaseDate"])
        if purchase_date is None:
            raise ValueError("purchaseDate is required")
        signed_date = _from_millis(payload.get("signedDate")) or purchase_date
        return cls(
            transaction_id=str(payload["transactionId"]),
            original_transaction_id=str(
                payload.get("originalTransactionId", payload["transactionId"])
            ),
            product_id=str(payload["productId"]),
            bundle_id=str(payload["bundleId"]),
            purchase_date=purchase_date,
            signed_date=signed_date,
            type=str(payload.get("type", "")),
            environment=str(payload.get("environment", "Production")),
            app_account_token=payload.get("appAccountToken"),
            in_app_ownership_type=payload.get("inAppOwnershipType"),
            revocation_date=_from_millis(payload.get("revocationDate")),
            revocation_reason=payload.get("revocationReason"),
        )

    def is_valid(self) -> bool:
        """Transaction is valid if not revoked."""
        return self.revocation_date is None

    def is_sandbox(self) -> bool:
        """Check if this is a sandbox (test) transaction."""
        return self.environment.lower() in ("sandbox", "xcode")

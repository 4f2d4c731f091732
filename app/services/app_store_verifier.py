"""
App Store Verifier - Offline verification of StoreKit 2 signed transactions.

NO DICTIONARIES - All data uses strongly typed models.

A signed transaction is a compact JWS (ES256) whose header carries an x5c
certificate chain: leaf, Apple intermediate, Apple root. The chain must end
at a configured trusted root and the payload signature is checked with the
leaf key. No network call is made.
"""

import base64
from collections.abc import Sequence
from pathlib import Path

import jwt
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from structlog import get_logger

from app.exceptions import ProductMismatchError, VerificationError
from app.models.api import Platform
from app.models.apple_storekit import AppleTransactionInfo
from app.models.domain import VerificationResult

logger = get_logger(__name__)

# Marker extensions Apple places on its transaction signing certificates
LEAF_MARKER_OID = x509.ObjectIdentifier("1.2.840.113635.100.6.11.1")
INTERMEDIATE_MARKER_OID = x509.ObjectIdentifier("1.2.840.113635.100.6.2.1")

CHAIN_LENGTH = 3


def load_certificate(data: bytes) -> x509.Certificate:
    """Load a certificate from PEM or DER bytes (Apple publishes roots as DER)."""
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def _verify_signed_by(child: x509.Certificate, issuer: x509.Certificate) -> None:
    public_key = issuer.public_key()
    hash_algorithm = child.signature_hash_algorithm
    if not isinstance(public_key, ec.EllipticCurvePublicKey) or hash_algorithm is None:
        raise VerificationError("Unsupported certificate signature algorithm")
    try:
        public_key.verify(child.signature, child.tbs_certificate_bytes, ec.ECDSA(hash_algorithm))
    except InvalidSignature as exc:
        raise VerificationError("Certificate chain signature is invalid") from exc


def _require_marker(cert: x509.Certificate, oid: x509.ObjectIdentifier, role: str) -> None:
    try:
        cert.extensions.get_extension_for_oid(oid)
    except x509.ExtensionNotFound as exc:
        raise VerificationError(f"Chain {role} is not an Apple signing certificate") from exc


class AppStoreVerifier:
    """
    Platform A verifier.

    Checks performed, in order:
    1. JWS header uses ES256 and carries a three-certificate x5c chain
    2. Chain links verify and end at a trusted root; marker OIDs present
    3. Payload signature verifies with the EC leaf public key; every
       certificate valid at the payload's signedDate
    4. bundleId matches, environment accepted, not revoked
    5. productId and transactionId match the claim
    """

    platform = Platform.APP_STORE

    def __init__(
        self,
        bundle_id: str,
        trusted_roots: Sequence[x509.Certificate],
        accept_sandbox: bool = False,
    ) -> None:
        if not bundle_id:
            raise ValueError("Bundle ID required")
        if not trusted_roots:
            raise ValueError("At least one trusted root certificate is required")

        self.bundle_id = bundle_id
        self.accept_sandbox = accept_sandbox
        self._root_fingerprints = {root.fingerprint(hashes.SHA256()) for root in trusted_roots}

        logger.info(
            "app_store_verifier_initialized",
            bundle_id=bundle_id,
            trusted_roots=len(self._root_fingerprints),
            accept_sandbox=accept_sandbox,
        )

    @classmethod
    def from_certificate_files(
        cls, bundle_id: str, paths: Sequence[str], accept_sandbox: bool = False
    ) -> "AppStoreVerifier":
        roots = [load_certificate(Path(path).read_bytes()) for path in paths]
        return cls(bundle_id=bundle_id, trusted_roots=roots, accept_sandbox=accept_sandbox)

    async def verify(
        self,
        raw_proof: str,
        claimed_product_id: str,
        claimed_transaction_id: str,
    ) -> VerificationResult:
        """
        Verify a signed transaction against the claim.

        Raises:
            VerificationError: Signature, chain, bundle, environment or revocation check failed
            ProductMismatchError: Signed productId differs from the claimed product id
        """
        transaction = self.decode_transaction(raw_proof)

        if transaction.bundle_id != self.bundle_id:
            logger.warning(
                "app_store_bundle_id_mismatch",
                expected=self.bundle_id,
                actual=transaction.bundle_id,
            )
            raise VerificationError("Bundle ID mismatch")

        if transaction.is_sandbox() and not self.accept_sandbox:
            raise VerificationError(f"Environment not accepted: {transaction.environment}")

        if not transaction.is_valid():
            raise VerificationError("Transaction has been revoked")

        if transaction.product_id != claimed_product_id:
            raise ProductMismatchError(expected=claimed_product_id, actual=transaction.product_id)

        if transaction.transaction_id != claimed_transaction_id:
            raise VerificationError("Transaction ID does not match signed payload")

        logger.info(
            "app_store_transaction_verified",
            transaction_id=transaction.transaction_id,
            product_id=transaction.product_id,
            environment=transaction.environment,
        )

        return VerificationResult(
            valid=True,
            canonical_transaction_id=transaction.transaction_id,
            canonical_product_id=transaction.product_id,
            environment=transaction.environment,
            purchased_at=transaction.purchase_date,
        )

    def decode_transaction(self, signed_transaction: str) -> AppleTransactionInfo:
        """Verify chain and signature, then parse the payload."""
        try:
            header = jwt.get_unverified_header(signed_transaction)
        except jwt.PyJWTError as exc:
            raise VerificationError("Malformed signed transaction") from exc

        if header.get("alg") != "ES256":
            raise VerificationError(f"Unsupported signing algorithm: {header.get('alg')}")

        chain = self._load_chain(header.get("x5c"))
        self._verify_chain(chain)

        leaf_key = chain[0].public_key()
        if not isinstance(leaf_key, ec.EllipticCurvePublicKey):
            raise VerificationError("Leaf certificate does not carry an EC public key")

        try:
            payload = jwt.decode(signed_transaction, key=leaf_key, algorithms=["ES256"])
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise VerificationError(f"Invalid transaction signature: {exc}") from exc

        try:
            transaction = AppleTransactionInfo.from_payload(payload)
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
            raise VerificationError(f"Malformed transaction payload: {exc}") from exc

        for cert in chain:
            if not cert.not_valid_before_utc <= transaction.signed_date <= cert.not_valid_after_utc:
                raise VerificationError("Certificate not valid at signing time")
        return transaction

    def _load_chain(self, x5c: object) -> list[x509.Certificate]:
        if not isinstance(x5c, list) or len(x5c) != CHAIN_LENGTH:
            raise VerificationError("Signed transaction must carry a three-certificate x5c chain")
        try:
            return [x509.load_der_x509_certificate(base64.b64decode(entry)) for entry in x5c]
        except (TypeError, ValueError) as exc:
            raise VerificationError("Malformed x5c certificate") from exc

    def _verify_chain(self, chain: list[x509.Certificate]) -> None:
        leaf, intermediate, root = chain

        if root.fingerprint(hashes.SHA256()) not in self._root_fingerprints:
            raise VerificationError("Certificate chain does not end at a trusted root")

        _require_marker(leaf, LEAF_MARKER_OID, "leaf")
        _require_marker(intermediate, INTERMEDIATE_MARKER_OID, "intermediate")

        _verify_signed_by(leaf, intermediate)
        _verify_signed_by(intermediate, root)

    async def close(self) -> None:
        """Nothing to release; present for a uniform verifier lifecycle."""
        return None

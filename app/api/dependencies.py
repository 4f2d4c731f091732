"""
FastAPI Dependencies - Authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.session import get_read_db, get_write_db
from app.models.api import ErrorKind, ErrorResponse
from app.services.catalog import CatalogService
from app.services.ledger import EntitlementLedger, TransactionLogWriter
from app.services.orchestrator import PurchaseOrchestrator
from app.services.receipt_verifier import ReceiptVerifier

logger = get_logger(__name__)

# ============================================================================
# Session Authentication
# ============================================================================


@dataclass
class UserIdentity:
    """Authenticated user identity from the session token."""

    user_id: str  # "sub" claim issued by the auth provider
    email: str | None = None


# Bearer token scheme for session auth
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=ErrorResponse(
            error_kind=ErrorKind.UNAUTHORIZED, message=message, retryable=False
        ).model_dump(mode="json"),
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_session_token(token: str) -> UserIdentity:
    """
    Verify a session JWT (HS256) and extract the user identity.

    Raises:
        jwt.InvalidTokenError: Signature, expiry or audience check failed,
            or the token carries no subject
    """
    options = {"require": ["sub", "exp"]}
    if settings.session_jwt_audience:
        payload = jwt.decode(
            token,
            settings.session_jwt_secret,
            algorithms=["HS256"],
            audience=settings.session_jwt_audience,
            options=options,
        )
    else:
        payload = jwt.decode(
            token,
            settings.session_jwt_secret,
            algorithms=["HS256"],
            options={**options, "verify_aud": False},
        )

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise jwt.InvalidTokenError("Token subject is empty")
    email = payload.get("email")
    return UserIdentity(user_id=user_id, email=email if isinstance(email, str) else None)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserIdentity:
    """
    FastAPI dependency to validate the session token from the Authorization header.

    Accepts: Authorization: Bearer {session_jwt}

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise _unauthorized("Authorization header required")

    try:
        return decode_session_token(credentials.credentials)
    except jwt.ExpiredSignatureError as e:
        logger.warning("session_token_expired")
        raise _unauthorized("Session expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning("session_token_invalid", error=str(e))
        raise _unauthorized("Invalid session token") from e


# ============================================================================
# Service Wiring
# ============================================================================


def get_receipt_verifier(request: Request) -> ReceiptVerifier:
    verifier: ReceiptVerifier = request.app.state.receipt_verifier
    return verifier


def get_log_writer(request: Request) -> TransactionLogWriter:
    writer: TransactionLogWriter = request.app.state.log_writer
    return writer


async def get_orchestrator(
    db: AsyncSession = Depends(get_write_db),
    verifier: ReceiptVerifier = Depends(get_receipt_verifier),
    log_writer: TransactionLogWriter = Depends(get_log_writer),
) -> PurchaseOrchestrator:
    """Request-scoped orchestrator over the write session."""
    return PurchaseOrchestrator(
        catalog=CatalogService(db),
        verifier=verifier,
        ledger=EntitlementLedger(db, log_writer),
    )


async def get_read_ledger(
    db: AsyncSession = Depends(get_read_db),
    log_writer: TransactionLogWriter = Depends(get_log_writer),
) -> EntitlementLedger:
    """Ledger over the read session, for listing and entitlement checks."""
    return EntitlementLedger(db, log_writer)

"""Exchange credential endpoints. Secrets are stored encrypted and never returned."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.database import get_db
from app.core.security import (
    CredentialError,
    decrypt_credential,
    encrypt_credential,
    is_encrypted,
    mask_credential,
)
from app.models.exchange_credential import ExchangeCredential
from app.models.user import User
from app.schemas.exchange import ExchangeCredentialCreate, ExchangeCredentialResponse

router = APIRouter()


# Prefix of every Fernet token (version byte 0x80)
FERNET_TOKEN_PREFIX = "gAAAAA"


def _masked_api_key(stored: str) -> str:
    if is_encrypted(stored):
        return mask_credential(decrypt_credential(stored))
    if stored.startswith(FERNET_TOKEN_PREFIX):
        # Stored under a rotated key; still listable so it can be deleted
        return "***"
    # Legacy row written before encryption at rest
    return mask_credential(stored)


def _to_response(credential: ExchangeCredential) -> ExchangeCredentialResponse:
    return ExchangeCredentialResponse(
        id=credential.id,
        exchange=credential.exchange,
        label=credential.label,
        api_key_masked=_masked_api_key(credential.encrypted_api_key or ""),
        has_secret=bool(credential.encrypted_secret_key),
        has_passphrase=bool(credential.encrypted_passphrase),
        is_active=credential.is_active,
        created_at=credential.created_at,
    )


@router.get("/", response_model=List[ExchangeCredentialResponse])
async def list_credentials(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[ExchangeCredentialResponse]:
    """List stored exchange credentials for the current user."""
    result = await db.execute(
        select(ExchangeCredential)
        .where(ExchangeCredential.user_id == current_user.id)
        .order_by(ExchangeCredential.created_at)
    )
    return [_to_response(c) for c in result.scalars().all()]


@router.post("/", response_model=ExchangeCredentialResponse, status_code=status.HTTP_201_CREATED)
async def create_credential(
    credential_in: ExchangeCredentialCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ExchangeCredentialResponse:
    """Store a new exchange credential."""
    try:
        credential = ExchangeCredential(
            user_id=current_user.id,
            exchange=credential_in.exchange.lower(),
            label=credential_in.label,
            encrypted_api_key=encrypt_credential(credential_in.api_key),
            encrypted_secret_key=(
                encrypt_credential(credential_in.secret_key) if credential_in.secret_key else None
            ),
            encrypted_passphrase=(
                encrypt_credential(credential_in.passphrase) if credential_in.passphrase else None
            ),
            is_active=True,
        )
    except CredentialError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    db.add(credential)
    await db.commit()
    await db.refresh(credential)
    return _to_response(credential)


@router.delete("/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    credential_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a stored credential."""
    result = await db.execute(
        select(ExchangeCredential).where(
            ExchangeCredential.id == credential_id,
            ExchangeCredential.user_id == current_user.id,
        )
    )
    credential = result.scalar_one_or_none()
    if not credential:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credential not found",
        )

    await db.delete(credential)
    await db.commit()

"""Security utilities: password hashing, JWT, credential encryption."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from app.core.config import settings


class CredentialError(Exception):
    """Raised when an exchange credential cannot be encrypted or decrypted."""


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )


# JWT tokens
def create_access_token(
    subject: str | Any,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def token_subject(token: str) -> Optional[str]:
    """Return the subject of a valid access token, or None."""
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    return payload.get("sub")


# Fernet encryption for exchange credentials
def get_fernet() -> Fernet:
    """Get Fernet instance for credential encryption."""
    try:
        return Fernet(settings.ENCRYPTION_KEY.encode())
    except (ValueError, TypeError) as e:
        raise CredentialError("ENCRYPTION_KEY is not a valid Fernet key") from e


def encrypt_credential(plain: str) -> str:
    """Encrypt an API key, secret or passphrase."""
    if not plain:
        raise CredentialError("Cannot encrypt an empty credential")
    return get_fernet().encrypt(plain.encode("utf-8")).decode("ascii")


def decrypt_credential(token: str) -> str:
    """Decrypt a value produced by encrypt_credential."""
    try:
        return get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        raise CredentialError("Failed to decrypt credential") from e


def mask_credential(value: Optional[str]) -> str:
    """Mask a credential for display: first 8 chars followed by ***."""
    if not value or len(value) <= 8:
        return "***"
    return value[:8] + "***"


def is_encrypted(value: str) -> bool:
    """Check whether a value decrypts with the current key."""
    if not value:
        return False
    try:
        get_fernet().decrypt(value.encode("ascii"))
        return True
    except (InvalidToken, UnicodeError):
        return False

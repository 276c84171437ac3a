"""
Utility functions for the application.

- Password hashing and verification using bcrypt
- JWT token creation
- HMAC-based OTP hashing for queryable secure storage
- Identifier normalization and user agent parsing
"""

from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import json
import re
import secrets
from typing import Any
import uuid

import aiofiles
import bcrypt
from fastapi import FastAPI
import jwt

from app.core.config import settings, utils_logger

PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def hash_password(password: str | None, rounds: int | None = None) -> str:
    """
    Hash a password using bcrypt with a random salt.

    Args:
        password: The plain text password to hash. Cannot be None.
        rounds: bcrypt cost factor. Defaults to settings.BCRYPT_ROUNDS.

    Returns:
        str: The bcrypt hashed password (60 characters).

    Raises:
        ValueError: If password is None.

    Examples:
        >>> hashed = hash_password("MySecurePassword123")
        >>> hashed.startswith("$2b$")
        True
    """
    if password is None:
        utils_logger.error("Attempted to hash None password")
        raise ValueError("Password cannot be None")

    password_bytes = password.encode("utf-8")

    # Bcrypt has a 72-byte limit
    if len(password_bytes) > 72:
        utils_logger.debug(
            f"Password exceeds 72 bytes ({len(password_bytes)} bytes), truncating to 72 bytes"
        )
        password_bytes = password_bytes[:72]

    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(password: str | None, hashed_password: str | None) -> bool:
    """
    Verify a password against a bcrypt hash in constant time.

    Args:
        password: The plain text password to verify.
        hashed_password: The bcrypt hash to verify against.

    Returns:
        bool: True if password matches the hash. False for any invalid input.

    Examples:
        >>> hashed = hash_password("MyPassword123")
        >>> verify_password("MyPassword123", hashed)
        True
        >>> verify_password(None, hashed)
        False
    """
    if password is None or hashed_password is None:
        utils_logger.warning("Password verification attempted with missing value(s)")
        return False

    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]

    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError as e:
        # Invalid hash format
        utils_logger.warning(
            f"Password verification failed due to invalid hash format: {type(e).__name__}"
        )
        return False


# Computed once so that unknown identifiers cost a full bcrypt check too
_DUMMY_PASSWORD_HASH = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=4)).decode()


def dummy_verify_password(password: str) -> bool:
    """Burn a bcrypt check for an unknown identifier. Always returns False."""
    verify_password(password, _DUMMY_PASSWORD_HASH)
    return False


def create_jwt_token(
    data: dict[str, Any] | None,
    secret_key: str,
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    """
    Create a signed JWT with exp, iat and jti claims.

    Args:
        data: Claims to encode. Cannot be None.
        secret_key: Key used to sign the token.
        expires_delta: Lifetime of the token. Defaults to 15 minutes; may be
            negative to mint an already-expired token.

    Returns:
        tuple[str, datetime]: The encoded token and its expiry.

    Raises:
        ValueError: If data is None.

    Examples:
        >>> token, expires_at = create_jwt_token({"sub": "123"}, "secret")
        >>> len(token.split("."))
        3
    """
    if data is None:
        utils_logger.error("Attempted to create JWT token with None data")
        raise ValueError("Data cannot be None")

    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else timedelta(minutes=15))
    to_encode["exp"] = expire
    to_encode["iat"] = now
    to_encode["jti"] = str(uuid.uuid4())

    encoded_jwt = jwt.encode(to_encode, secret_key, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt, expire


def hash_token(token: str) -> str:
    """SHA256 hex digest of a token, used for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_id() -> str:
    """Opaque, URL-safe session identifier with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_otp_code(length: int = 6) -> str:
    """
    Generate a numeric One-Time Password (OTP) code of specified length.

    Args:
        length: Length of the OTP code to generate. Default is 6.

    Returns:
        A string representing the numeric OTP code.
    """
    return "".join(secrets.choice("0123456789") for _ in range(length))


def mask_otp(otp: str) -> str:
    """
    Mask an OTP code for logging purposes, showing only first and last digit.

    Examples:
        >>> mask_otp("123456")
        '1****6'
        >>> mask_otp("12")
        '12'
    """
    if len(otp) <= 2:
        return otp

    return f"{otp[0]}{'*' * (len(otp) - 2)}{otp[-1]}"


def mask_identifier(identifier: str) -> str:
    """
    Mask an email or phone for logs.

    Examples:
        >>> mask_identifier("jane@example.com")
        'j***@example.com'
        >>> mask_identifier("9876543210")
        '98******10'
    """
    if "@" in identifier:
        local, _, domain = identifier.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(identifier) <= 4:
        return "*" * len(identifier)
    return f"{identifier[:2]}{'*' * (len(identifier) - 4)}{identifier[-2:]}"


def hmac_hash_otp(otp: str | None, secret: str | None) -> str:
    """
    Hash an OTP using HMAC-SHA256 for secure, queryable storage.

    Args:
        otp: The OTP code to hash. Cannot be None or empty.
        secret: The secret key for HMAC. Cannot be None or empty.

    Returns:
        str: The HMAC-SHA256 hash as a 64-character hexadecimal string.

    Raises:
        ValueError: If otp or secret is None or empty.
    """
    if not otp:
        raise ValueError("OTP cannot be None or empty")
    if not secret:
        raise ValueError("Secret cannot be None or empty")

    return hmac.new(
        secret.encode("utf-8"), otp.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hmac_verify_otp(
    otp: str | None, hashed_otp: str | None, secret: str | None
) -> bool:
    """
    Verify an OTP against its HMAC-SHA256 hash using constant-time comparison.

    Returns:
        bool: True if OTP matches the hash. False for any invalid input.

    Examples:
        >>> hashed = hmac_hash_otp("123456", "secret")
        >>> hmac_verify_otp("123456", hashed, "secret")
        True
        >>> hmac_verify_otp("654321", hashed, "secret")
        False
    """
    if not otp or not hashed_otp or not secret:
        return False

    computed_hash = hmac_hash_otp(otp, secret)
    result = hmac.compare_digest(computed_hash, hashed_otp)
    if not result:
        utils_logger.info(f"OTP {mask_otp(otp)} verification failed: mismatch")
    return result


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(phone: str) -> str:
    """
    Reduce a phone number to its ten national digits.

    Examples:
        >>> normalize_phone("+91 98765-43210")
        '9876543210'
    """
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    return digits


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone))


def parse_user_agent(user_agent: str | None) -> dict[str, str]:
    """
    Parse a user agent string into browser, OS and device type.

    Args:
        user_agent: User-Agent header string from request

    Returns:
        dict with "browser", "os" and "device" keys ("Unknown" when undetected).

    Examples:
        >>> ua = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0"
        >>> parse_user_agent(ua)
        {'browser': 'Chrome', 'os': 'Windows', 'device': 'desktop'}
    """
    info = {"browser": "Unknown", "os": "Unknown", "device": "desktop"}
    if not user_agent:
        info["device"] = "Unknown"
        return info

    if "Windows" in user_agent:
        info["os"] = "Windows"
    elif "Android" in user_agent:
        info["os"] = "Android"
    elif "iPhone" in user_agent or "iPad" in user_agent or "iOS" in user_agent:
        info["os"] = "iOS"
    elif "Mac OS X" in user_agent or "Macintosh" in user_agent:
        info["os"] = "macOS"
    elif "Linux" in user_agent:
        info["os"] = "Linux"

    if "Edg/" in user_agent:
        info["browser"] = "Edge"
    elif "Chrome" in user_agent:
        info["browser"] = "Chrome"
    elif "Firefox" in user_agent:
        info["browser"] = "Firefox"
    elif "Safari" in user_agent:
        info["browser"] = "Safari"

    if "iPad" in user_agent or "Tablet" in user_agent:
        info["device"] = "tablet"
    elif "Mobile" in user_agent or "iPhone" in user_agent or "Android" in user_agent:
        info["device"] = "mobile"

    return info


def generate_openapi_json(app: FastAPI) -> str:
    """
    Generate OpenAPI JSON schema for the given FastAPI application.

    Args:
        app: The FastAPI application instance.

    Returns:
        A pretty-printed JSON string of the OpenAPI schema.
    """
    openapi_json = json.dumps(app.openapi(), indent=4)
    utils_logger.info("OpenAPI JSON schema generated successfully")
    return openapi_json


async def write_to_file_async(file_path: str, data: str) -> None:
    """
    Asynchronously write data to a file.

    Args:
        file_path: Path to the file where data should be written.
        data: The string data to write to the file.
    """
    try:
        async with aiofiles.open(file_path, mode="w", encoding="utf-8") as file:
            await file.write(data)
        utils_logger.info(f"Data written to file {file_path} successfully.")
    except OSError as e:
        utils_logger.error(
            f"Failed to write data to file {file_path}: {type(e).__name__} - {str(e)}"
        )
        raise

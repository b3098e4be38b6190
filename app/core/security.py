"""
Password hashing and JWT helpers
"""

import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import settings

logger = logging.getLogger(__name__)

# New hashes go through bcrypt directly: passlib's bcrypt backend self-test
# fails on current bcrypt releases. passlib still verifies imported hashes.
BCRYPT_ROUNDS = 10
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "sha256_crypt"], deprecated="auto")

# Rate limiting storage (per process)
login_attempts: Dict[str, Dict[str, Any]] = {}

# Security constants
MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION_MINUTES = 15

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


class TokenError(Exception):
    """Raised when a token cannot be decoded or lacks a subject"""


def _truncate_for_bcrypt(password: str) -> bytes:
    # Bcrypt has a 72-byte limit
    password_bytes = password.encode("utf-8")[:72]
    # Drop a trailing incomplete UTF-8 sequence
    while password_bytes and (password_bytes[-1] & 0xC0) == 0x80:
        password_bytes = password_bytes[:-1]
    return password_bytes


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    hashed = bcrypt.hashpw(_truncate_for_bcrypt(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(_truncate_for_bcrypt(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash: try the schemes passlib knows
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            return False


def parse_expires_in(value: str) -> timedelta:
    """
    Parse a duration such as "7d", "12h", "30m", "45s" or "3600" (seconds).
    Unparseable values fall back to 7 days.
    """
    match = _DURATION_RE.match(str(value or ""))
    if not match:
        logger.warning(f"Invalid JWT_EXPIRES_IN value {value!r}; using 7d")
        return timedelta(days=7)
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token; ``data`` must carry the ``sub`` claim"""
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])

    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or parse_expires_in(settings.JWT_EXPIRES_IN))

    to_encode.update({
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
    })

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token

    Raises TokenError when the signature or expiry is invalid or ``sub`` is missing.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise TokenError(str(e)) from e

    sub = payload.get("sub")
    if not sub:
        raise TokenError("Token has no subject")

    payload["sub"] = str(sub)
    return payload


def check_login_attempts(identifier: str) -> bool:
    """Check if login attempts are within limits"""
    now = datetime.now(timezone.utc)

    attempts = login_attempts.get(identifier)
    if not attempts:
        return True

    locked_until = attempts.get("locked_until")
    if locked_until and now < locked_until:
        return False

    # Reset if lockout period has passed
    if locked_until and now >= locked_until:
        login_attempts.pop(identifier, None)
        return True

    return attempts.get("count", 0) < MAX_LOGIN_ATTEMPTS


def record_login_attempt(identifier: str, success: bool) -> None:
    """Record a login attempt"""
    if success:
        # Reset on successful login
        login_attempts.pop(identifier, None)
        return

    now = datetime.now(timezone.utc)
    attempts = login_attempts.setdefault(identifier, {"count": 0, "last_attempt": None, "locked_until": None})
    attempts["count"] += 1
    attempts["last_attempt"] = now

    # Lock account if max attempts reached
    if attempts["count"] >= MAX_LOGIN_ATTEMPTS:
        attempts["locked_until"] = now + timedelta(minutes=LOCKOUT_DURATION_MINUTES)
        logger.warning(f"Login locked for {identifier} until {attempts['locked_until'].isoformat()}")

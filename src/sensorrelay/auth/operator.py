"""Operator accounts, login and role checks for the web console.

Passwords are stored as salted PBKDF2-SHA256 hashes. A successful login
issues a signed, time-limited JWT carrying the username (``sub``) and
role; admin-only endpoints require ``role == "admin"``.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable

from jose import jwt
from jose.exceptions import JWTError

from sensorrelay.domain.models import LoginResponse, UserInfo
from sensorrelay.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
ADMIN_ROLE = "admin"


def hash_password(password: str, salt: bytes | None = None) -> tuple[str, str]:
    """Hash password using PBKDF2-SHA256. Returns (hash_hex, salt_hex)."""
    if salt is None:
        salt = secrets.token_bytes(32)
    password_hash = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
    )
    return password_hash.hex(), salt.hex()


def verify_password(password: str, stored_hash: str, salt_hex: str) -> bool:
    """Check a password against a stored hash in constant time."""
    password_hash, _ = hash_password(password, bytes.fromhex(salt_hex))
    return secrets.compare_digest(password_hash, stored_hash)


@dataclass(frozen=True)
class OperatorAccount:
    username: str
    role: str
    password_hash: str
    salt: str

    def public(self) -> UserInfo:
        return UserInfo(username=self.username, role=self.role)


class UserStore:
    """Fixed in-memory table of operator accounts."""

    def __init__(self) -> None:
        self._accounts: dict[str, OperatorAccount] = {}

    def add(self, username: str, password: str, role: str = "user") -> OperatorAccount:
        password_hash, salt = hash_password(password)
        account = OperatorAccount(username=username, role=role, password_hash=password_hash, salt=salt)
        self._accounts[username] = account
        return account

    def get(self, username: str) -> OperatorAccount | None:
        return self._accounts.get(username)

    def list_users(self) -> list[UserInfo]:
        return [a.public() for a in self._accounts.values()]

    @classmethod
    def with_admin(cls, username: str, password: str) -> UserStore:
        """A store holding only the bootstrap admin account."""
        store = cls()
        store.add(username, password, role=ADMIN_ROLE)
        return store


class TokenIssuer:
    """Signs and verifies session tokens."""

    def __init__(
        self,
        secret: str,
        ttl: float = 3600.0,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock

    def issue(self, account: OperatorAccount) -> str:
        now = int(self._clock())
        claims = {
            "sub": account.username,
            "role": account.role,
            "iat": now,
            "exp": now + int(self._ttl),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify the signature and expiry of ``token`` and return its claims.

        Raises:
            Unauthorized: If the token is malformed, forged or expired.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as e:
            raise Unauthorized(f"Invalid token: {e}") from e
        if "sub" not in claims or "role" not in claims:
            raise Unauthorized("Invalid token: missing claims")
        return dict(claims)


class OperatorGuard:
    """Login and authorization for operator-only endpoints."""

    def __init__(self, users: UserStore, tokens: TokenIssuer) -> None:
        self._users = users
        self._tokens = tokens

    @property
    def users(self) -> UserStore:
        return self._users

    def login(self, username: str, password: str) -> LoginResponse:
        """Exchange credentials for a session token.

        Raises:
            Unauthorized: On unknown user or wrong password.
        """
        account = self._users.get(username)
        if account is None or not verify_password(password, account.password_hash, account.salt):
            logger.warning("Failed login for %r", username)
            raise Unauthorized("Invalid username or password")
        logger.info("Operator %r logged in (role=%s)", username, account.role)
        return LoginResponse(token=self._tokens.issue(account), username=account.username, role=account.role)

    def authenticate(self, token: str | None) -> dict[str, Any]:
        """Claims of a valid token.

        Raises:
            Unauthorized: If the token is missing or invalid.
        """
        if not token:
            raise Unauthorized("Missing operator token")
        return self._tokens.decode(token)

    def require_role(self, token: str | None, role: str = ADMIN_ROLE) -> dict[str, Any]:
        """Claims of a valid token whose role is ``role``.

        Raises:
            Unauthorized: If the token is missing or invalid.
            Forbidden: If the token is valid but carries another role.
        """
        claims = self.authenticate(token)
        if claims.get("role") != role:
            raise Forbidden(f"Requires role {role!r}")
        return claims

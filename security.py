"""
Admin authentication

Password hashing (passlib), bearer token issue/verify (python-jose) and the
`require_roles` guard used by every admin-scoped route.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

import config
from database import ADMINS, collection, create_document, get_document_by_id, update_document, utcnow
from errors import (
    AccountDeactivatedError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from schemas import Admin, Role, TokenClaims, normalize_email

logger = logging.getLogger(__name__)

# Use pbkdf2_sha256 to avoid bcrypt backend issues in some environments
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_access_token(admin: dict, now: Optional[datetime] = None) -> str:
    """Sign {id, email, role} with an expiry of ACCESS_TOKEN_EXPIRE_MINUTES"""
    now = now or datetime.now(timezone.utc)
    to_encode = {
        "id": str(admin["_id"]),
        "email": admin["email"],
        "role": admin["role"],
        "iat": now,
        "exp": now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidTokenError("Token expired")
    except JWTError:
        raise InvalidTokenError("Invalid token")
    try:
        return TokenClaims.model_validate(payload)
    except ValueError:
        raise InvalidTokenError("Invalid token")


def authenticate(email: str, password: str, now: Optional[datetime] = None):
    """Check credentials and issue a token; returns (token, admin document)"""
    email = normalize_email(email)
    admin = collection(ADMINS).find_one({"email": email})
    if not admin:
        logger.warning("Login failed for unknown email %s", email)
        raise InvalidCredentialsError("Invalid credentials")

    # Deactivated accounts are refused before the password is even checked
    if not admin.get("is_active", True):
        logger.warning("Login refused for deactivated admin %s", email)
        raise AccountDeactivatedError("Account is deactivated")

    if not verify_password(password, admin.get("password", "")):
        logger.warning("Login failed for %s: wrong password", email)
        raise InvalidCredentialsError("Invalid credentials")

    admin_id = str(admin["_id"])
    admin["last_login"] = utcnow()
    update_document(ADMINS, admin_id, {"last_login": admin["last_login"]})
    token = create_access_token(admin, now=now)
    logger.info("Admin %s logged in", email)
    return token, admin


def get_current_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> TokenClaims:
    if credentials is None or not credentials.credentials:
        raise InvalidTokenError("No token provided")
    return decode_access_token(credentials.credentials)


def get_live_claims(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
    """Claims of a token whose admin still exists and is active"""
    admin = get_document_by_id(ADMINS, claims.id)
    if not admin or not admin.get("is_active", True):
        raise InvalidTokenError("Invalid token")
    return claims


class CurrentAdmin:
    """The authenticated admin behind a request"""

    def __init__(self, claims: TokenClaims, admin: dict):
        self.claims = claims
        self.admin = admin

    @property
    def id(self) -> str:
        return self.claims.id


def require_roles(*roles: Role):
    """Dependency factory: a valid token whose role is in `roles`.

    With no roles given any admin role passes. super_admin satisfies every
    admin-level guard.
    """
    allowed = {Role(r).value for r in roles} or {r.value for r in Role}
    allowed.add(Role.super_admin.value)

    def guard(claims: TokenClaims = Depends(get_current_claims)) -> CurrentAdmin:
        if claims.role not in allowed:
            raise ForbiddenError("Access denied")
        admin = get_document_by_id(ADMINS, claims.id)
        if not admin:
            raise InvalidTokenError("Invalid token")
        if not admin.get("is_active", True):
            raise AccountDeactivatedError("Account is deactivated")
        return CurrentAdmin(claims, admin)

    return guard


require_admin = require_roles(Role.admin)
require_super_admin = require_roles(Role.super_admin)


def bootstrap_super_admin():
    """Seed a super_admin when no admin exists yet"""
    admins = collection(ADMINS)
    if admins.count_documents({}) > 0:
        return None
    admin = Admin(
        username=config.BOOTSTRAP_ADMIN_USERNAME,
        email=config.BOOTSTRAP_ADMIN_EMAIL,
        password=hash_password(config.BOOTSTRAP_ADMIN_PASSWORD),
        role=Role.super_admin,
    )
    new_id = create_document(ADMINS, admin)
    if config.BOOTSTRAP_ADMIN_PASSWORD == "admin123":
        logger.warning("Seeded super_admin %s with the default password; change it", admin.email)
    else:
        logger.info("Seeded super_admin %s", admin.email)
    return new_id

"""
Admin account management (super_admin) and self-service profile
"""

import logging
from typing import List

from pymongo.errors import DuplicateKeyError

from database import ADMINS, collection, create_document, delete_document, get_document_by_id, get_documents, \
    serialize, update_document
from errors import InvalidCredentialsError, NotFoundError, ValidationError
from schemas import Admin, AdminCreate, AdminUpdate, PasswordChange, ProfileUpdate, Role, normalize_email
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

# Never send password hashes out
PUBLIC_FIELDS = {"password": 0}


def _get_or_404(admin_id: str) -> dict:
    doc = get_document_by_id(ADMINS, admin_id, PUBLIC_FIELDS)
    if not doc:
        raise NotFoundError("Admin not found")
    return serialize(doc)


def _email_taken(email: str, exclude_id: str = None) -> bool:
    doc = collection(ADMINS).find_one({"email": normalize_email(email)})
    return doc is not None and str(doc["_id"]) != exclude_id


def _apply_update(admin_id: str, changes: dict) -> dict:
    if "email" in changes and _email_taken(changes["email"], exclude_id=admin_id):
        raise ValidationError("Email already in use")
    try:
        found = update_document(ADMINS, admin_id, changes)
    except DuplicateKeyError:
        raise ValidationError("Email already in use")
    if not found:
        raise NotFoundError("Admin not found")
    return _get_or_404(admin_id)


def list_admins() -> List[dict]:
    return [serialize(d) for d in get_documents(ADMINS, projection=PUBLIC_FIELDS, sort=[("created_at", 1)])]


def get_admin(admin_id: str) -> dict:
    return _get_or_404(admin_id)


def create_admin(payload: AdminCreate) -> dict:
    if _email_taken(payload.email):
        raise ValidationError("Admin already exists")
    admin = Admin(
        username=payload.username,
        email=payload.email,
        password=hash_password(payload.password),
        role=payload.role,
    )
    try:
        new_id = create_document(ADMINS, admin)
    except DuplicateKeyError:
        raise ValidationError("Admin already exists")
    logger.info("Admin %s created with role %s", admin.email, admin.role)
    return _get_or_404(new_id)


def update_admin(admin_id: str, payload: AdminUpdate, acting_admin_id: str) -> dict:
    changes = payload.model_dump(exclude_none=True)
    if admin_id == acting_admin_id:
        if changes.get("is_active") is False:
            raise ValidationError("Cannot deactivate your own account")
        if changes.get("role", Role.super_admin.value) != Role.super_admin.value:
            raise ValidationError("Cannot change your own role")
    doc = _apply_update(admin_id, changes)
    logger.info("Admin %s updated: %s", admin_id, ", ".join(sorted(changes)) or "no changes")
    return doc


def delete_admin(admin_id: str, acting_admin_id: str):
    if admin_id == acting_admin_id:
        raise ValidationError("Cannot delete your own account")
    if not delete_document(ADMINS, admin_id):
        raise NotFoundError("Admin not found")
    logger.info("Admin %s deleted by %s", admin_id, acting_admin_id)


def update_profile(admin_id: str, payload: ProfileUpdate) -> dict:
    return _apply_update(admin_id, payload.model_dump(exclude_none=True))


def change_password(admin_id: str, payload: PasswordChange):
    admin = get_document_by_id(ADMINS, admin_id)
    if not admin:
        raise NotFoundError("Admin not found")
    if not verify_password(payload.current_password, admin.get("password", "")):
        raise InvalidCredentialsError("Current password is incorrect")
    update_document(ADMINS, admin_id, {"password": hash_password(payload.new_password)})
    logger.info("Admin %s changed their password", admin_id)

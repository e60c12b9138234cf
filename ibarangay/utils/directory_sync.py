"""
Resident / User directory sync.

A Resident profile and its Resident-role User share a display name. Edits on
either side are written back to the other in the same transaction, and a
change of purok recomputes the resident's address.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import func

from ibarangay import db
from ibarangay.models.resident import Resident
from ibarangay.models.user import User, ROLES, ROLE_RESIDENT
from ibarangay.utils.admin_audit import log_generic_action
from ibarangay.utils.security import hash_password
from ibarangay.utils.validators import (
    ValidationError,
    sanitize_string,
    validate_birthdate,
    validate_email,
    validate_name,
    validate_password,
)

logger = logging.getLogger(__name__)

ADDRESS_SUFFIX = 'Brgy. Mina De Oro, Bongabong, Oriental Mindoro'

RESIDENT_FIELDS = ('first_name', 'last_name', 'purok', 'birthdate', 'household_number', 'avatar_url')
USER_FIELDS = ('name', 'email', 'role', 'avatar_url', 'is_active')


class DuplicateEmail(Exception):
    """Another account already uses the email address."""


class NotFound(Exception):
    pass


def compose_address(purok: str) -> str:
    return f"{purok}, {ADDRESS_SUFFIX}"


def split_full_name(name: str, current_last_name: str = '') -> Tuple[str, str]:
    """
    Split a display name on its first space.

    "Maria Clara Santos" -> ("Maria", "Clara Santos"). A single word keeps
    ``current_last_name``.
    """
    name = sanitize_string(name)
    if ' ' not in name:
        return name, current_last_name
    first, rest = name.split(' ', 1)
    return first, rest


def _email_taken(email: str, exclude_user_id: Optional[int] = None) -> bool:
    query = User.query.filter(func.lower(User.email) == email.lower())
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return db.session.query(query.exists()).scalar()


def _clean_resident_fields(fields: dict) -> dict:
    cleaned = {}
    for key in RESIDENT_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key in ('first_name', 'last_name'):
            value = validate_name(value, key)
        elif key == 'birthdate':
            value = validate_birthdate(value)
        elif key == 'purok':
            value = sanitize_string(value, 100)
            if not value:
                raise ValidationError('purok', 'Purok is required')
        elif key == 'household_number':
            value = sanitize_string(value, 50)
            if not value:
                raise ValidationError('household_number', 'Household number is required')
        elif key == 'avatar_url':
            value = sanitize_string(value, 500) or None
        cleaned[key] = value
    return cleaned


def _apply_resident_fields(resident: Resident, cleaned: dict) -> dict:
    """Set changed fields on ``resident``; returns {field: (old, new)}."""
    changes = {}
    for key, value in cleaned.items():
        old = getattr(resident, key)
        if old != value:
            setattr(resident, key, value)
            changes[key] = (old, value)
    if 'purok' in changes:
        resident.address = compose_address(resident.purok)
        changes['address'] = (None, resident.address)
    return changes


def _audit_values(changes: dict):
    old = {k: _jsonable(v[0]) for k, v in changes.items()}
    new = {k: _jsonable(v[1]) for k, v in changes.items()}
    return old, new


def _jsonable(value):
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value


def update_resident(resident_id: int, fields: dict, actor: Optional[User] = None, commit: bool = True) -> Resident:
    """
    Partially update a resident and propagate the name to its paired User.

    With ``commit=False`` the changes stay in the session so the caller can
    commit them together with further updates.

    Raises:
        NotFound: no resident with ``resident_id``
        ValidationError: a field failed validation
    """
    resident = db.session.get(Resident, resident_id)
    if resident is None:
        raise NotFound(f'Resident {resident_id} not found')

    cleaned = _clean_resident_fields(fields or {})
    changes = _apply_resident_fields(resident, cleaned)

    if ('first_name' in changes or 'last_name' in changes) and resident.user_id:
        user = db.session.get(User, resident.user_id)
        if user is not None:
            user.name = resident.full_name
    if 'avatar_url' in changes and resident.user_id:
        user = db.session.get(User, resident.user_id)
        if user is not None:
            user.avatar_url = resident.avatar_url

    if changes:
        old, new = _audit_values(changes)
        log_generic_action(
            user_id=actor.id if actor else None,
            entity_type='resident',
            entity_id=resident.id,
            action='update',
            actor_role=actor.role if actor else None,
            old_values=old,
            new_values=new,
        )
    if commit:
        db.session.commit()
    return resident


def update_user(user_id: int, fields: dict, actor: Optional[User] = None, commit: bool = True) -> User:
    """
    Partially update a user; a Resident's new name is split onto the profile.

    ``commit`` works as in :func:`update_resident`.

    Raises:
        NotFound: no user with ``user_id``
        ValidationError: a field failed validation
        DuplicateEmail: the new email belongs to another account
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f'User {user_id} not found')

    fields = fields or {}
    changes = {}

    if 'name' in fields:
        name = validate_name(fields['name'], 'name')
        if user.role == ROLE_RESIDENT and user.resident_id:
            resident = db.session.get(Resident, user.resident_id)
            if resident is not None:
                first, last = split_full_name(name, resident.last_name)
                resident.first_name = first
                resident.last_name = last
                # A single word keeps the last name, so both records carry the full name
                name = resident.full_name
        if name != user.name:
            changes['name'] = (user.name, name)
            user.name = name

    if 'email' in fields:
        email = validate_email(fields['email'])
        if email != user.email:
            if _email_taken(email, exclude_user_id=user.id):
                raise DuplicateEmail('Email already in use')
            changes['email'] = (user.email, email)
            user.email = email

    if 'role' in fields:
        role = fields['role']
        if role not in ROLES:
            raise ValidationError('role', f"Invalid role. Allowed: {', '.join(ROLES)}")
        if role != user.role:
            changes['role'] = (user.role, role)
            user.role = role

    if 'avatar_url' in fields:
        avatar = sanitize_string(fields['avatar_url'], 500) or None
        if avatar != user.avatar_url:
            changes['avatar_url'] = (user.avatar_url, avatar)
            user.avatar_url = avatar

    if 'is_active' in fields:
        active = bool(fields['is_active'])
        if active != user.is_active:
            changes['is_active'] = (user.is_active, active)
            user.is_active = active

    if changes:
        old, new = _audit_values(changes)
        log_generic_action(
            user_id=actor.id if actor else None,
            entity_type='user',
            entity_id=user.id,
            action='update',
            actor_role=actor.role if actor else None,
            old_values=old,
            new_values=new,
        )
    if commit:
        db.session.commit()
    return user


def create_resident_account(data: dict, actor: Optional[User] = None) -> Tuple[Resident, User]:
    """
    Register a resident profile and its Resident-role login together.

    Required keys: first_name, last_name, email, password, purok, birthdate,
    household_number.
    """
    first_name = validate_name(data.get('first_name'), 'first_name')
    last_name = validate_name(data.get('last_name'), 'last_name')
    email = validate_email(data.get('email'))
    password = validate_password(data.get('password'))
    birthdate = validate_birthdate(data.get('birthdate'))
    purok = sanitize_string(data.get('purok'), 100)
    if not purok:
        raise ValidationError('purok', 'Purok is required')
    household_number = sanitize_string(data.get('household_number'), 50)
    if not household_number:
        raise ValidationError('household_number', 'Household number is required')

    if _email_taken(email):
        raise DuplicateEmail('Email already in use')

    resident = Resident(
        first_name=first_name,
        last_name=last_name,
        purok=purok,
        address=compose_address(purok),
        birthdate=birthdate,
        household_number=household_number,
    )
    user = User(
        name=f'{first_name} {last_name}',
        email=email,
        password_hash=hash_password(password),
        role=ROLE_RESIDENT,
        is_active=True,
    )
    db.session.add_all([resident, user])
    db.session.flush()

    resident.user_id = user.id
    user.resident_id = resident.id

    log_generic_action(
        user_id=actor.id if actor else None,
        entity_type='resident',
        entity_id=resident.id,
        action='create',
        actor_role=actor.role if actor else None,
        new_values={'name': user.name, 'email': email, 'purok': purok},
    )
    db.session.commit()
    logger.info("Created resident %s with account %s", resident.display_id, user.id)
    return resident, user


def create_staff_account(data: dict, actor: Optional[User] = None) -> User:
    name = validate_name(data.get('name'), 'name')
    email = validate_email(data.get('email'))
    password = validate_password(data.get('password'))
    role = data.get('role')
    if role not in ROLES or role == ROLE_RESIDENT:
        raise ValidationError('role', 'Staff accounts need an official role')
    if _email_taken(email):
        raise DuplicateEmail('Email already in use')

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    log_generic_action(
        user_id=actor.id if actor else None,
        entity_type='user',
        entity_id=user.id,
        action='create',
        actor_role=actor.role if actor else None,
        new_values={'name': name, 'email': email, 'role': role},
    )
    db.session.commit()
    return user


def delete_resident(resident_id: int, actor: Optional[User] = None) -> None:
    """Remove a resident without requests, together with its login."""
    resident = db.session.get(Resident, resident_id)
    if resident is None:
        raise NotFound(f'Resident {resident_id} not found')
    if resident.requests.count():
        raise ValidationError('resident', 'Resident has document requests and cannot be deleted')

    user = db.session.get(User, resident.user_id) if resident.user_id else None
    if user is not None:
        user.resident_id = None
        resident.user_id = None
        db.session.flush()
        db.session.delete(user)

    log_generic_action(
        user_id=actor.id if actor else None,
        entity_type='resident',
        entity_id=resident.id,
        action='delete',
        actor_role=actor.role if actor else None,
        old_values={'name': resident.full_name},
    )
    db.session.delete(resident)
    db.session.commit()

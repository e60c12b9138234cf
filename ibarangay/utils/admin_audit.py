"""Audit logging utility for staff actions.

Entries are added to the current session; the caller commits them together
with the change they describe.
"""
from flask import current_app

from ibarangay import db
from ibarangay.models.audit import AuditLog


def log_generic_action(
    user_id=None,
    entity_type: str = None,
    entity_id: int = None,
    action: str = None,
    actor_role: str = None,
    old_values: dict = None,
    new_values: dict = None,
    notes: str = None,
) -> AuditLog:
    """
    Record an action against an entity.

    Args:
        user_id: ID of the acting user (None for system actions)
        entity_type: Kind of entity, e.g. 'document_request'
        entity_id: ID of the entity
        action: What happened, e.g. 'approve', 'update'
        actor_role: Role of the acting user at the time of the action
        old_values: Values before the change
        new_values: Values after the change
        notes: Free-form notes (rejection reason, etc.)

    Returns:
        The pending AuditLog instance
    """
    if not action or not entity_type:
        raise ValueError("entity_type and action are required")

    entry = AuditLog(
        user_id=int(user_id) if user_id is not None else None,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_role=actor_role or 'system',
        old_values=old_values,
        new_values=new_values,
        notes=notes,
    )
    db.session.add(entry)
    current_app.logger.info(
        "Audit: %s on %s:%s by %s",
        action,
        entity_type,
        entity_id,
        user_id if user_id is not None else 'system',
    )
    return entry

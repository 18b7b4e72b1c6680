"""
nORM - Role-Based Access Control
Per-client roles: admin > editor > viewer
"""
import logging
from typing import List, Optional, Tuple

from norm.database import db
from norm.errors import AuthorizationError, NotFoundError, ValidationError
from norm.models.db_models import DBClientUser, DBUser, ClientRole

logger = logging.getLogger(__name__)


def get_user_client_role(user_id: str, client_id: str) -> Optional[str]:
    """Role of user on client, or None when the user is not a member"""
    membership = DBClientUser.query.filter_by(user_id=user_id, client_id=client_id).first()
    return membership.role if membership else None


def has_client_access(user_id: str, client_id: str, required_role: Optional[str] = None) -> bool:
    """True when user is a member of client with at least required_role"""
    role = get_user_client_role(user_id, client_id)
    if role is None:
        return False
    if not required_role:
        return True
    return ClientRole.HIERARCHY.get(role, 0) >= ClientRole.HIERARCHY[required_role]


def require_client_access(user_id: str, client_id: str, required_role: Optional[str] = None):
    if not has_client_access(user_id, client_id, required_role):
        logger.info(f"Access denied: user={user_id} client={client_id} required={required_role or 'any'}")
        raise AuthorizationError(f"You don't have {required_role or 'access'} to this client")


def get_user_clients(user_id: str) -> List[str]:
    """IDs of every client the user belongs to"""
    rows = DBClientUser.query.filter_by(user_id=user_id).all()
    return [row.client_id for row in rows]


def add_client_member(client_id: str, user_id: str, role: str = ClientRole.VIEWER) -> DBClientUser:
    """Grant or change a user's role on a client. Caller commits."""
    membership = DBClientUser.query.filter_by(user_id=user_id, client_id=client_id).first()
    if membership:
        membership.role = role
    else:
        membership = DBClientUser(client_id=client_id, user_id=user_id, role=role)
        db.session.add(membership)
    return membership


def get_client_members(client_id: str) -> List[Tuple[DBClientUser, DBUser]]:
    """Memberships of a client with their users, admins first"""
    rows = db.session.query(DBClientUser, DBUser).join(
        DBUser, DBUser.id == DBClientUser.user_id
    ).filter(DBClientUser.client_id == client_id).all()
    return sorted(rows, key=lambda row: (-ClientRole.HIERARCHY.get(row[0].role, 0), row[1].email))


def _ensure_other_admin(client_id: str, user_id: str):
    admins = DBClientUser.query.filter(
        DBClientUser.client_id == client_id,
        DBClientUser.role == ClientRole.ADMIN,
        DBClientUser.user_id != user_id
    ).count()
    if admins == 0:
        raise ValidationError('A client must keep at least one admin')


def set_client_member_role(client_id: str, user_id: str, role: str) -> DBClientUser:
    """Add a member or change their role. The last admin cannot be demoted."""
    if role not in ClientRole.ALL:
        raise ValidationError(f"role must be one of: {', '.join(ClientRole.ALL)}")

    current = get_user_client_role(user_id, client_id)
    if current == ClientRole.ADMIN and role != ClientRole.ADMIN:
        _ensure_other_admin(client_id, user_id)

    membership = add_client_member(client_id, user_id, role)
    db.session.commit()
    logger.info(f"User {user_id} is now {role} of client {client_id}")
    return membership


def remove_client_member(client_id: str, user_id: str):
    membership = DBClientUser.query.filter_by(client_id=client_id, user_id=user_id).first()
    if not membership:
        raise NotFoundError('Member', user_id)
    if membership.role == ClientRole.ADMIN:
        _ensure_other_admin(client_id, user_id)

    db.session.delete(membership)
    db.session.commit()
    logger.info(f"User {user_id} removed from client {client_id}")

# Overview: Tenant scope resolution; every read and write filters through here.

"""
Tenant Scope Resolver

MULTI-TENANT: all business rows carry `created_by`, the id of the ADMIN user
that roots their tenant. A principal resolves to exactly one tenant id:

- SUPERADMIN                    -> no restriction (None)
- principal with created_by     -> created_by (a self-owned ADMIN resolves to itself)
- principal without created_by  -> the principal's own id
- no principal                  -> matches nothing; writes raise UnauthorizedError

Lookups outside scope report "not found". Whether the row exists in another
tenant is only written to the log, never returned to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass

import sqlalchemy as sa
from flask import current_app, has_app_context

from ..errors import ForbiddenError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models.auth import ROLE_MANAGER, ROLE_SUPERADMIN, User
from .concurrency import lock_for_update


@dataclass(frozen=True)
class Principal:
    """The authenticated actor, detached from the ORM session."""
    user_id: int
    role: str
    created_by: int | None = None
    branch_id: int | None = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=user.id,
            role=user.role,
            created_by=user.created_by,
            branch_id=user.branch_id,
        )

    @property
    def is_super(self) -> bool:
        return self.role == ROLE_SUPERADMIN


def resolve_tenant_id(principal: Principal | None) -> int | None:
    """Return the tenant id for `principal`, or None for SUPERADMIN."""
    if principal is None:
        raise UnauthorizedError("Authentication required")
    if principal.is_super:
        return None
    if principal.created_by is not None:
        return principal.created_by
    return principal.user_id


def require_tenant_id(principal: Principal | None) -> int:
    """
    Tenant id to stamp onto new rows.

    SUPERADMIN sits outside every tenant and cannot create tenant rows
    directly.
    """
    tenant_id = resolve_tenant_id(principal)
    if tenant_id is None:
        raise ForbiddenError("SUPERADMIN must act through a tenant administrator")
    return tenant_id


def tenant_filter(model, principal: Principal | None):
    """SQL predicate restricting `model` rows to the principal's tenant."""
    if principal is None:
        return sa.false()
    if principal.is_super:
        return sa.true()
    return model.created_by == resolve_tenant_id(principal)


def branch_filter(model, principal: Principal | None):
    """Narrow branch-bearing rows for a MANAGER assigned to one branch."""
    if (
        principal is not None
        and principal.role == ROLE_MANAGER
        and principal.branch_id is not None
        and hasattr(model, "branch_id")
    ):
        return model.branch_id == principal.branch_id
    return sa.true()


def scoped_query(model, principal: Principal | None, *, branch_scoped: bool = False):
    """
    Base query for `model` limited to the principal's tenant.

    Usage:
        products = scoped_query(Product, principal).filter_by(is_active=True).all()
    """
    query = db.session.query(model).filter(tenant_filter(model, principal))
    if branch_scoped:
        query = query.filter(branch_filter(model, principal))
    return query


def get_scoped(
    model, entity_id, principal: Principal | None, *, branch_scoped: bool = False, for_update: bool = False
):
    """Fetch one row inside scope, or None. `for_update` row-locks it until commit."""
    if entity_id is None:
        return None
    query = scoped_query(model, principal, branch_scoped=branch_scoped).filter(model.id == entity_id)
    if for_update:
        query = lock_for_update(query)
    row = query.first()
    if row is None and principal is not None:
        _log_cross_tenant_attempt(model, entity_id, principal)
    return row


def get_scoped_or_404(model, entity_id, principal: Principal | None, *, not_found=None, branch_scoped: bool = False):
    row = get_scoped(model, entity_id, principal, branch_scoped=branch_scoped)
    if row is None:
        if not_found is not None:
            raise not_found
        raise NotFoundError(f"{model.__name__} not found")
    return row


def stamp_owner(entity, principal: Principal | None):
    """Set created_by on a new row from the principal's tenant."""
    entity.created_by = require_tenant_id(principal)
    return entity


def _log_cross_tenant_attempt(model, entity_id, principal: Principal) -> None:
    # Only log when the row exists elsewhere; plain misses are not security events
    if not has_app_context():
        return
    exists = (
        db.session.query(model.id)
        .filter(model.id == entity_id)
        .first()
    )
    if exists is not None:
        current_app.logger.warning(
            "Cross-tenant access denied: user=%s role=%s tenant=%s resource=%s id=%s",
            principal.user_id,
            principal.role,
            principal.created_by,
            model.__tablename__,
            entity_id,
        )

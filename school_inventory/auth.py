from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from school_inventory.errors import Forbidden
from school_inventory.models import UserRole as Role

INVENTORY_WRITE_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
STAFF_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.STAFF})


@dataclass
class Principal:
    id: int
    email: str
    role: Role
    active: bool


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def is_admin_role(role: Role) -> bool:
    return role in INVENTORY_WRITE_ROLES


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_capability(principal: Principal, allowed: frozenset[Role], action: str) -> None:
    # Services re-check the role themselves; routers are not the only callers.
    if not principal.active:
        raise Forbidden('Account is suspended')
    if principal.role not in allowed:
        raise Forbidden(f'Your role cannot {action}')


def assert_inventory_writer(principal: Principal, action: str = 'modify inventory') -> None:
    assert_capability(principal, INVENTORY_WRITE_ROLES, action)


def assert_staff(principal: Principal, action: str = 'submit stock-out requests') -> None:
    assert_capability(principal, STAFF_ROLES, action)


def assert_super_admin(principal: Principal, action: str = 'manage users') -> None:
    assert_capability(principal, frozenset({Role.SUPER_ADMIN}), action)

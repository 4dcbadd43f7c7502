"""
Caller identity checks for catalog mutations.

The upstream authentication layer hands us an opaque subject id; roles are
looked up in the ``users`` table. Checks run before any write so a rejected
call has no effect.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from catalog.core.errors import UnauthenticatedError, UnauthorizedError
from catalog.data.models import User
from catalog.data.product_store import ProductStore


@dataclass(frozen=True)
class Caller:
    subject: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls(None)


def require_user(session: Session, caller: Optional[Caller]) -> User:
    if caller is None or not caller.subject:
        raise UnauthenticatedError()
    user = ProductStore(session).user_by_subject(caller.subject)
    if user is None:
        raise UnauthorizedError()
    return user


def require_admin(session: Session, caller: Optional[Caller]) -> User:
    user = require_user(session, caller)
    if user.role != "admin":
        raise UnauthorizedError()
    return user

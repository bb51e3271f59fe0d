from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Session, col, select

from blogacl.domain.models import (
    Identifier,
    User,
    UserCreate,
    UserGroupLink,
    UserTokenPermission,
)
from blogacl.infra.db import get_engine
from blogacl.infra.eventlog import write_event_log
from blogacl.services.errors import NotFoundError, commit_or_raise


def lookup_user_id(session: Session, user: Identifier | User) -> int | None:
    if isinstance(user, User):
        return user.id
    if isinstance(user, int):
        return user
    return session.exec(select(User.id).where(User.username == user)).first()


class UserService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def create_user(self, payload: UserCreate) -> User:
        with self._session() as session:
            user = User(username=payload.username, email=payload.email)
            session.add(user)
            write_event_log(f"New user created: {user.username}", "info", "user", "blogacl", session=session)
            commit_or_raise(session, "username already exists")
            session.refresh(user)
            return user

    def get_user(self, user: Identifier) -> User | None:
        with self._session() as session:
            if isinstance(user, int):
                return session.get(User, user)
            return session.exec(select(User).where(User.username == user)).first()

    def user_id(self, user: Identifier | User) -> int | None:
        with self._session() as session:
            return lookup_user_id(session, user)

    def list_users(self) -> list[User]:
        with self._session() as session:
            return list(session.exec(select(User).order_by(col(User.id))).all())

    def delete_user(self, user: Identifier) -> None:
        with self._session() as session:
            user_id = lookup_user_id(session, user)
            row = session.get(User, user_id) if user_id is not None else None
            if row is None:
                raise NotFoundError("user not found")
            session.execute(sa.delete(UserTokenPermission).where(col(UserTokenPermission.user_id) == row.id))
            session.execute(sa.delete(UserGroupLink).where(col(UserGroupLink.user_id) == row.id))
            session.delete(row)
            write_event_log(f"User deleted: {row.username}", "info", "user", "blogacl", session=session)
            commit_or_raise(session)

from __future__ import annotations

from typing import cast

import sqlalchemy as sa
from sqlmodel import Session, col, select

from blogacl.domain.models import (
    Group,
    GroupTokenPermission,
    Identifier,
    PostToken,
    Token,
    User,
    UserGroupLink,
    UserTokenPermission,
)
from blogacl.domain.permissions import (
    ADMIN_GROUP_NAME,
    DEFAULT_TOKENS,
    TOKEN_SUPER_USER,
    Access,
    Bitmask,
    access_check,
    apply_access,
    get_bitmask,
    normalize_token,
)
from blogacl.infra.db import get_engine
from blogacl.infra.eventlog import write_event_log
from blogacl.infra.hooks import HookBus, hooks
from blogacl.services.errors import (
    AlreadyExistsError,
    NotFoundError,
    VetoedError,
    commit_or_raise,
    flush_or_raise,
)
from blogacl.services.user_service import lookup_user_id

TOKEN_ORDER_COLUMNS = ("id", "name", "description")

GrantModel = type[GroupTokenPermission] | type[UserTokenPermission]


class AccessControlService:
    """Permission tokens, grants and access resolution.

    Users and groups hold grants on named tokens. A grant stores an access
    bitmask; a stored zero is an explicit deny, which is different from having
    no grant row at all.
    """

    # Access returned for a token that is not registered.
    ACCESS_NONEXISTENT_PERMISSION = 0

    def __init__(
        self,
        *,
        nonexistent_access: int | None = None,
        hook_bus: HookBus | None = None,
    ) -> None:
        if nonexistent_access is None:
            nonexistent_access = self.ACCESS_NONEXISTENT_PERMISSION
        self.nonexistent_access = get_bitmask(nonexistent_access).value
        self.hooks = hook_bus if hook_bus is not None else hooks

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _lookup_token(self, session: Session, token: Identifier) -> Token | None:
        if isinstance(token, int):
            return session.get(Token, token)
        statement = select(Token).where(Token.name == normalize_token(token))
        return session.exec(statement).first()

    def _token_id(self, session: Session, token: Identifier) -> int | None:
        if isinstance(token, int):
            return token
        return session.exec(select(Token.id).where(Token.name == normalize_token(token))).first()

    def _require_token_id(self, session: Session, token: Identifier) -> int:
        token_id = self._token_id(session, token)
        if token_id is None:
            raise NotFoundError(f"token not found: {token}")
        return token_id

    def _group_id(self, session: Session, group: Identifier) -> int | None:
        if isinstance(group, int):
            row = session.get(Group, group)
            return row.id if row is not None else None
        return session.exec(select(Group.id).where(Group.name == group)).first()

    def _require_group_id(self, session: Session, group: Identifier) -> int:
        group_id = self._group_id(session, group)
        if group_id is None:
            raise NotFoundError(f"group not found: {group}")
        return group_id

    def _require_user_id(self, session: Session, user: Identifier | User) -> int:
        user_id = lookup_user_id(session, user)
        if user_id is None or session.get(User, user_id) is None:
            raise NotFoundError(f"user not found: {user}")
        return user_id

    # Token registry

    def token_id(self, token: Identifier) -> int | None:
        with self._session() as session:
            return self._token_id(session, token)

    def token_exists(self, token: Identifier) -> bool:
        with self._session() as session:
            return self._lookup_token(session, token) is not None

    def token_name(self, token: Identifier) -> str | None:
        with self._session() as session:
            row = self._lookup_token(session, token)
            return row.name if row is not None else None

    def token_description(self, token: Identifier) -> str | None:
        with self._session() as session:
            row = self._lookup_token(session, token)
            return row.description if row is not None else None

    def get_token(self, token: Identifier) -> Token | None:
        with self._session() as session:
            return self._lookup_token(session, token)

    def all_tokens(self, order: str = "id") -> list[Token]:
        order = order.lower()
        if order not in TOKEN_ORDER_COLUMNS:
            order = "id"
        statement = select(Token).order_by(col(getattr(Token, order)), col(Token.id))
        with self._session() as session:
            return list(session.exec(statement).all())

    def create_token(self, name: str, description: str | None = None) -> Token:
        name = normalize_token(name)
        if not name:
            raise ValueError("token name must not be empty")
        with self._session() as session:
            if self._lookup_token(session, name) is not None:
                raise AlreadyExistsError(f"token already exists: {name}")
            if not self.hooks.allow("token_create_allow", name, description):
                raise VetoedError(f"token creation vetoed: {name}")
            self.hooks.act("token_create_before", name, description)

            token = Token(name=name, description=description)
            session.add(token)
            flush_or_raise(session, f"token already exists: {name}")
            token_id = cast(int, token.id)

            # Every new token is granted to the admin group when there is one.
            admin_id = self._group_id(session, ADMIN_GROUP_NAME)
            if admin_id is not None:
                self._apply_grant(session, GroupTokenPermission, admin_id, token_id, Access.FULL)

            write_event_log(f"New permission created: {name}", "info", "default", "blogacl", session=session)
            commit_or_raise(session, f"token already exists: {name}")
            session.refresh(token)

        self.hooks.act("token_create_after", token)
        return token

    def destroy_token(self, token: Identifier) -> None:
        with self._session() as session:
            row = self._lookup_token(session, token)
            if row is None:
                raise NotFoundError(f"token not found: {token}")
            token_id = row.id
            if not self.hooks.allow("token_destroy_allow", token_id):
                raise VetoedError(f"token removal vetoed: {row.name}")
            self.hooks.act("token_destroy_before", token_id)

            session.execute(sa.delete(GroupTokenPermission).where(col(GroupTokenPermission.token_id) == token_id))
            session.execute(sa.delete(UserTokenPermission).where(col(UserTokenPermission.token_id) == token_id))
            session.delete(row)
            write_event_log(f"Permission token deleted: {row.name}", "info", "default", "blogacl", session=session)
            commit_or_raise(session)

        self.hooks.act("token_destroy_after", token_id)

    def create_default_tokens(self) -> list[Token]:
        created: list[Token] = []
        for name, description in DEFAULT_TOKENS:
            if self.token_exists(name):
                continue
            created.append(self.create_token(name, description))
        return created

    # Access resolution

    def _user_grant_rows(
        self,
        session: Session,
        user_id: int,
        token_id: int | None = None,
    ) -> list[tuple[int, int]]:
        direct = sa.select(
            col(UserTokenPermission.token_id),
            col(UserTokenPermission.permission_id),
        ).where(col(UserTokenPermission.user_id) == user_id)
        via_groups = (
            sa.select(
                col(GroupTokenPermission.token_id),
                col(GroupTokenPermission.permission_id),
            )
            .join(UserGroupLink, col(UserGroupLink.group_id) == col(GroupTokenPermission.group_id))
            .where(col(UserGroupLink.user_id) == user_id)
        )
        if token_id is not None:
            direct = direct.where(col(UserTokenPermission.token_id) == token_id)
            via_groups = via_groups.where(col(GroupTokenPermission.token_id) == token_id)

        grants = sa.union_all(direct, via_groups).subquery()
        statement = sa.select(grants.c.token_id, grants.c.permission_id).order_by(
            grants.c.permission_id,
            grants.c.token_id,
        )
        return [(int(row.token_id), int(row.permission_id)) for row in session.execute(statement)]

    def resolve_user_access(self, user: Identifier | User, token: Identifier) -> Bitmask:
        with self._session() as session:
            token_row = self._lookup_token(session, token)
            if token_row is None or token_row.id is None:
                return get_bitmask(self.nonexistent_access)

            user_id = lookup_user_id(session, user)
            if user_id is None:
                return get_bitmask(0)

            result = 0
            for _, mask in self._user_grant_rows(session, user_id, token_row.id):
                # An explicit deny from any path vetoes every other grant.
                if mask == 0:
                    result = 0
                    break
                result |= mask
            return get_bitmask(result)

    def user_can(self, user: Identifier | User, token: Identifier, access: str = Access.FULL) -> bool:
        if access_check(self.resolve_user_access(user, token), access):
            return True
        super_user_access = self.resolve_user_access(user, TOKEN_SUPER_USER)
        return access_check(super_user_access, Access.ANY)

    def user_cannot(self, user: Identifier | User, token: Identifier) -> bool:
        # No super_user bypass here, so a super user can be both "can" and "cannot".
        return access_check(self.resolve_user_access(user, token), Access.DENY)

    def resolve_group_access(self, group: Identifier, token: Identifier) -> Bitmask | None:
        with self._session() as session:
            group_id = self._group_id(session, group)
            token_id = self._token_id(session, token)
            if group_id is None or token_id is None:
                return None
            row = session.get(GroupTokenPermission, (group_id, token_id))
            if row is None:
                return None
            return get_bitmask(row.permission_id)

    def group_can(self, group: Identifier, token: Identifier, access: str = Access.FULL) -> bool:
        bitmask = self.resolve_group_access(group, token)
        if bitmask is None:
            return False
        return access_check(bitmask, access)

    def list_tokens_for_user(
        self,
        user: Identifier | User,
        access: str = Access.FULL,
        posts_only: bool = False,
    ) -> list[int]:
        is_super_user = access_check(self.resolve_user_access(user, TOKEN_SUPER_USER), Access.ANY)
        with self._session() as session:
            accesses: dict[int, int] = {}
            if is_super_user:
                full = get_bitmask(0).full
                for token_id in session.exec(select(Token.id).order_by(col(Token.id))).all():
                    if token_id is not None:
                        accesses[token_id] = full
            else:
                user_id = lookup_user_id(session, user)
                if user_id is not None:
                    # Rows come lowest mask first, so the highest grant per token wins.
                    for token_id, mask in self._user_grant_rows(session, user_id):
                        accesses[token_id] = mask

            post_tokens: set[int] = set()
            if posts_only:
                post_tokens = set(session.exec(select(PostToken.token_id).distinct()).all())

        tokens: list[int] = []
        for token_id, mask in accesses.items():
            if posts_only and token_id not in post_tokens:
                continue
            if access == Access.DENY:
                if mask == 0:
                    tokens.append(token_id)
            elif access_check(get_bitmask(mask), access):
                tokens.append(token_id)
        return sorted(tokens)

    # Grant mutation

    def _apply_grant(
        self,
        session: Session,
        model: GrantModel,
        subject_id: int,
        token_id: int,
        access: str,
    ) -> Bitmask:
        row = session.get(model, (subject_id, token_id))
        bitmask = apply_access(get_bitmask(row.permission_id if row is not None else 0), access)
        if row is None:
            if model is GroupTokenPermission:
                row = GroupTokenPermission(group_id=subject_id, token_id=token_id, permission_id=bitmask.value)
            else:
                row = UserTokenPermission(user_id=subject_id, token_id=token_id, permission_id=bitmask.value)
        else:
            row.permission_id = bitmask.value
        session.add(row)
        return bitmask

    def _revoke_grant(self, session: Session, model: GrantModel, subject_id: int, token_id: int) -> bool:
        row = session.get(model, (subject_id, token_id))
        if row is None:
            return False
        session.delete(row)
        return True

    def grant_group(self, group: Identifier, token: Identifier, access: str = Access.FULL) -> Bitmask:
        with self._session() as session:
            group_id = self._require_group_id(session, group)
            token_id = self._require_token_id(session, token)
            bitmask = self._apply_grant(session, GroupTokenPermission, group_id, token_id, access)
            commit_or_raise(session)
            return bitmask

    def grant_user(self, user: Identifier | User, token: Identifier, access: str = Access.FULL) -> Bitmask:
        with self._session() as session:
            user_id = self._require_user_id(session, user)
            token_id = self._require_token_id(session, token)
            bitmask = self._apply_grant(session, UserTokenPermission, user_id, token_id, access)
            commit_or_raise(session)
            return bitmask

    def deny_group(self, group: Identifier, token: Identifier) -> Bitmask:
        return self.grant_group(group, token, Access.DENY)

    def deny_user(self, user: Identifier | User, token: Identifier) -> Bitmask:
        return self.grant_user(user, token, Access.DENY)

    def revoke_group_token(self, group: Identifier, token: Identifier) -> bool:
        with self._session() as session:
            group_id = self._require_group_id(session, group)
            token_id = self._require_token_id(session, token)
            removed = self._revoke_grant(session, GroupTokenPermission, group_id, token_id)
            commit_or_raise(session)
            return removed

    def revoke_user_token(self, user: Identifier | User, token: Identifier) -> bool:
        with self._session() as session:
            user_id = self._require_user_id(session, user)
            token_id = self._require_token_id(session, token)
            removed = self._revoke_grant(session, UserTokenPermission, user_id, token_id)
            commit_or_raise(session)
            return removed

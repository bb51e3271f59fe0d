from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from blogacl.api.deps import get_acl_service, require_access
from blogacl.domain.models import (
    AccessRead,
    GroupCreate,
    GroupGrantRequest,
    GroupMembersRequest,
    GroupRead,
    Identifier,
    TokenCreate,
    TokenRead,
    UserCanRead,
    UserCreate,
    UserRead,
    UserTokensRead,
)
from blogacl.domain.permissions import Access, access_label
from blogacl.services.acl_service import AccessControlService
from blogacl.services.errors import (
    AccessControlError,
    AlreadyExistsError,
    NotFoundError,
    StoreFailureError,
    VetoedError,
)
from blogacl.services.user_service import UserService
from blogacl.services.usergroup_service import UserGroup

router = APIRouter()

TOKEN_MANAGER = "manage_groups"
USER_MANAGER = "manage_users"


def get_user_service() -> UserService:
    return UserService()


Acl = Annotated[AccessControlService, Depends(get_acl_service)]
Users = Annotated[UserService, Depends(get_user_service)]


def _handle_acl_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, AlreadyExistsError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, VetoedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, StoreFailureError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    raise exc


def _identifier(value: str) -> Identifier:
    # Path segments are text; all-digit segments address rows by id.
    return int(value) if value.isdigit() else value


def _group_read(group: UserGroup) -> GroupRead:
    if group.id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="group not found")
    return GroupRead(
        id=group.id,
        name=group.name,
        members=group.members,
        permissions={
            token_id: AccessRead(token_id=token_id, value=mask, level=access_label(mask))
            for token_id, mask in group.permissions.items()
        },
    )


def _load_group(group: str, acl: AccessControlService) -> UserGroup:
    loaded = UserGroup.get(_identifier(group), acl=acl)
    if loaded is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="group not found")
    return loaded


@router.get(
    "/tokens",
    response_model=list[TokenRead],
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def list_tokens(acl: Acl, order: str = "id") -> list[TokenRead]:
    return [TokenRead.model_validate(item) for item in acl.all_tokens(order)]


@router.post(
    "/tokens",
    response_model=TokenRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def create_token(payload: TokenCreate, acl: Acl) -> TokenRead:
    try:
        token = acl.create_token(payload.name, payload.description)
        return TokenRead.model_validate(token)
    except (AccessControlError, ValueError) as exc:
        _handle_acl_error(exc)
        raise


@router.get(
    "/tokens/{token}",
    response_model=TokenRead,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def get_token(token: str, acl: Acl) -> TokenRead:
    row = acl.get_token(_identifier(token))
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="token not found")
    return TokenRead.model_validate(row)


@router.delete(
    "/tokens/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def delete_token(token: str, acl: Acl) -> Response:
    try:
        acl.destroy_token(_identifier(token))
    except AccessControlError as exc:
        _handle_acl_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/groups",
    response_model=list[GroupRead],
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def list_groups(acl: Acl) -> list[GroupRead]:
    return [_group_read(item) for item in UserGroup.all_groups(acl=acl)]


@router.post(
    "/groups",
    response_model=GroupRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def create_group(payload: GroupCreate, acl: Acl) -> GroupRead:
    try:
        group = UserGroup.create(payload.name, payload.members, acl=acl)
        return _group_read(group)
    except AccessControlError as exc:
        _handle_acl_error(exc)
        raise


@router.get(
    "/groups/{group}",
    response_model=GroupRead,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def get_group(group: str, acl: Acl) -> GroupRead:
    return _group_read(_load_group(group, acl))


@router.delete(
    "/groups/{group}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def delete_group(group: str, acl: Acl) -> Response:
    loaded = _load_group(group, acl)
    try:
        loaded.delete()
    except AccessControlError as exc:
        _handle_acl_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/groups/{group}/members",
    response_model=GroupRead,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def add_group_members(group: str, payload: GroupMembersRequest, acl: Acl) -> GroupRead:
    loaded = _load_group(group, acl)
    try:
        loaded.add(payload.users)
        loaded.update()
        return _group_read(loaded)
    except AccessControlError as exc:
        _handle_acl_error(exc)
        raise


@router.post(
    "/groups/{group}/members/remove",
    response_model=GroupRead,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def remove_group_members(group: str, payload: GroupMembersRequest, acl: Acl) -> GroupRead:
    loaded = _load_group(group, acl)
    try:
        loaded.remove(payload.users)
        loaded.update()
        return _group_read(loaded)
    except AccessControlError as exc:
        _handle_acl_error(exc)
        raise


@router.put(
    "/groups/{group}/tokens/{token}",
    response_model=AccessRead,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def grant_group_token(group: str, token: str, payload: GroupGrantRequest, acl: Acl) -> AccessRead:
    try:
        bitmask = acl.grant_group(_identifier(group), _identifier(token), payload.access)
        token_id = acl.token_id(_identifier(token))
    except (AccessControlError, ValueError) as exc:
        _handle_acl_error(exc)
        raise
    return AccessRead(token_id=token_id or 0, value=bitmask.value, level=access_label(bitmask.value))


@router.delete(
    "/groups/{group}/tokens/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access(TOKEN_MANAGER))],
)
def revoke_group_token(group: str, token: str, acl: Acl) -> Response:
    try:
        acl.revoke_group_token(_identifier(group), _identifier(token))
    except AccessControlError as exc:
        _handle_acl_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access(USER_MANAGER))],
)
def create_user(payload: UserCreate, users: Users) -> UserRead:
    try:
        user = users.create_user(payload)
        return UserRead.model_validate(user)
    except AccessControlError as exc:
        _handle_acl_error(exc)
        raise


@router.put(
    "/users/{user_id}/tokens/{token}",
    response_model=AccessRead,
    dependencies=[Depends(require_access(USER_MANAGER))],
)
def grant_user_token(user_id: int, token: str, payload: GroupGrantRequest, acl: Acl) -> AccessRead:
    try:
        bitmask = acl.grant_user(user_id, _identifier(token), payload.access)
        token_id = acl.token_id(_identifier(token))
    except (AccessControlError, ValueError) as exc:
        _handle_acl_error(exc)
        raise
    return AccessRead(token_id=token_id or 0, value=bitmask.value, level=access_label(bitmask.value))


@router.delete(
    "/users/{user_id}/tokens/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access(USER_MANAGER))],
)
def revoke_user_token(user_id: int, token: str, acl: Acl) -> Response:
    try:
        acl.revoke_user_token(user_id, _identifier(token))
    except AccessControlError as exc:
        _handle_acl_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/users/{user_id}/tokens",
    response_model=UserTokensRead,
    dependencies=[Depends(require_access(USER_MANAGER))],
)
def list_user_tokens(
    user_id: int,
    acl: Acl,
    access: Annotated[Access, Query()] = Access.FULL,
    posts_only: bool = False,
) -> UserTokensRead:
    try:
        token_ids = acl.list_tokens_for_user(user_id, access, posts_only)
    except ValueError as exc:
        _handle_acl_error(exc)
        raise
    return UserTokensRead(user_id=user_id, access=access, posts_only=posts_only, token_ids=token_ids)


@router.get(
    "/users/{user_id}/can/{token}",
    response_model=UserCanRead,
    dependencies=[Depends(require_access(USER_MANAGER))],
)
def check_user_access(
    user_id: int,
    token: str,
    acl: Acl,
    access: Annotated[Access, Query()] = Access.FULL,
) -> UserCanRead:
    try:
        can = acl.user_can(user_id, _identifier(token), access)
        cannot = acl.user_cannot(user_id, _identifier(token))
    except ValueError as exc:
        _handle_acl_error(exc)
        raise
    return UserCanRead(user_id=user_id, token=token, access=access, can=can, cannot=cannot)

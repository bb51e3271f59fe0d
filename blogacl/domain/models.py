from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel

from blogacl.domain.permissions import Access


def now_utc() -> datetime:
    return datetime.now(UTC)


class LogSeverity(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "err"
    CRITICAL = "crit"


class EventLogEntry(SQLModel, table=True):
    __tablename__ = "event_log"

    id: int | None = Field(default=None, primary_key=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    message: str
    severity: str = Field(default=LogSeverity.INFO.value, index=True)
    category: str = Field(default="default", index=True)
    source: str = Field(default="blogacl", index=True)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Group(SQLModel, table=True):
    __tablename__ = "groups"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class UserGroupLink(SQLModel, table=True):
    __tablename__ = "users_groups"

    group_id: int = Field(foreign_key="groups.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id", primary_key=True, index=True)


class Token(SQLModel, table=True):
    __tablename__ = "tokens"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class GroupTokenPermission(SQLModel, table=True):
    __tablename__ = "group_token_permissions"

    group_id: int = Field(foreign_key="groups.id", primary_key=True)
    token_id: int = Field(foreign_key="tokens.id", primary_key=True, index=True)
    permission_id: int = Field(default=0)


class UserTokenPermission(SQLModel, table=True):
    __tablename__ = "user_token_permissions"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    token_id: int = Field(foreign_key="tokens.id", primary_key=True, index=True)
    permission_id: int = Field(default=0)


class PostToken(SQLModel, table=True):
    __tablename__ = "post_tokens"

    token_id: int = Field(primary_key=True)
    post_id: int = Field(primary_key=True, index=True)


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TokenCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    description: str | None = None


class TokenRead(ORMReadModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime


class UserCreate(BaseModel):
    username: str = PydanticField(min_length=1)
    email: str | None = None


class UserRead(ORMReadModel):
    id: int
    username: str
    email: str | None = None
    created_at: datetime


class GroupCreate(BaseModel):
    name: str = PydanticField(min_length=1)
    members: list[int | str] = PydanticField(default_factory=list)


class GroupMembersRequest(BaseModel):
    users: list[int | str] = PydanticField(min_length=1)


class GroupGrantRequest(BaseModel):
    access: Access = Access.FULL


class AccessRead(BaseModel):
    token_id: int
    value: int
    level: str


class GroupRead(BaseModel):
    id: int
    name: str
    members: list[int]
    permissions: dict[int, AccessRead]


class UserCanRead(BaseModel):
    user_id: int
    token: str
    access: Access
    can: bool
    cannot: bool


class UserTokensRead(BaseModel):
    user_id: int
    access: Access
    posts_only: bool
    token_ids: list[int]


class EventLogRead(ORMReadModel):
    id: int
    ts: datetime
    ts_display: str
    message: str
    severity: LogSeverity
    category: str
    source: str


# An int is always an id and a str is always a name, even when it is all digits.
Identifier = int | str

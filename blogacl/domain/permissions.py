from __future__ import annotations

import re
from collections.abc import Sequence
from enum import StrEnum
from typing import Literal


class Access(StrEnum):
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    CREATE = "create"
    FULL = "full"
    ANY = "any"
    DENY = "deny"


# Bit positions follow list order: read=1, edit=2, delete=4, create=8.
ACCESS_NAMES: tuple[str, ...] = (
    Access.READ.value,
    Access.EDIT.value,
    Access.DELETE.value,
    Access.CREATE.value,
)

TOKEN_SUPER_USER = "super_user"
ADMIN_GROUP_NAME = "admin"

DEFAULT_TOKENS: tuple[tuple[str, str], ...] = (
    (TOKEN_SUPER_USER, "Permissions for super users"),
    ("own_posts", "Permissions on one's own posts"),
    ("manage_all_comments", "Manage comments on all posts"),
    ("manage_own_post_comments", "Manage comments on one's own posts"),
    ("manage_tags", "Manage tags"),
    ("manage_options", "Manage options"),
    ("manage_theme", "Change theme"),
    ("manage_theme_config", "Configure the active theme"),
    ("manage_plugins", "Activate/deactivate plugins"),
    ("manage_plugins_config", "Configure active plugins"),
    ("manage_import", "Use the importer"),
    ("manage_users", "Add, remove, and edit users"),
    ("manage_groups", "Manage groups and permissions"),
    ("manage_logs", "Manage logs"),
)

_WHITESPACE_RE = re.compile(r"\s+")


class Bitmask:
    """Fixed-width set of named bit flags.

    Each flag maps to the bit given by its index in ``flags``. ``full`` is the
    value with every flag set.
    """

    def __init__(self, flags: Sequence[str], value: int = 0) -> None:
        if not flags:
            raise ValueError("bitmask needs at least one flag")
        if len(set(flags)) != len(flags):
            raise ValueError("bitmask flags must be unique")
        self._flags: tuple[str, ...] = tuple(flags)
        self._full = (1 << len(self._flags)) - 1
        self._value = 0
        self.value = value

    @property
    def flags(self) -> tuple[str, ...]:
        return self._flags

    @property
    def full(self) -> int:
        return self._full

    @property
    def value(self) -> int:
        return self._value

    @value.setter
    def value(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"bitmask value must be an integer, got {value!r}")
        if value < 0 or value > self._full:
            raise ValueError(f"bitmask value {value} outside 0..{self._full}")
        self._value = value

    def _bit(self, flag: str) -> int:
        try:
            return 1 << self._flags.index(flag)
        except ValueError as exc:
            raise ValueError(f"unknown bitmask flag: {flag}") from exc

    def is_set(self, flag: str) -> bool:
        return bool(self._value & self._bit(flag))

    def set_flag(self, flag: str, on: bool = True) -> None:
        bit = self._bit(flag)
        if on:
            self._value |= bit
        else:
            self._value &= ~bit

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitmask):
            return NotImplemented
        return self._flags == other._flags and self._value == other._value

    def __hash__(self) -> int:
        return hash((self._flags, self._value))

    def __repr__(self) -> str:
        return f"Bitmask(value={self._value}, flags={list(self._flags)!r})"


def get_bitmask(mask: int) -> Bitmask:
    return Bitmask(ACCESS_NAMES, mask)


def access_check(bitmask: Bitmask, access: str) -> bool:
    if access == Access.FULL:
        return bitmask.value == bitmask.full
    if access == Access.ANY:
        return bitmask.value != 0
    if access == Access.DENY:
        return bitmask.value == 0
    return bitmask.is_set(access)


def access_level(mask: int) -> str | Literal[False]:
    """Report a single access name for ``mask``.

    Composite masks report only their lowest flag: read+edit is "read".
    Use ``get_bitmask`` and ``access_check`` for real checks.
    """
    bitmask = get_bitmask(mask)
    if bitmask.value == bitmask.full:
        return Access.FULL.value
    for flag in bitmask.flags:
        if bitmask.is_set(flag):
            return flag
    return False


def access_label(mask: int) -> str:
    level = access_level(mask)
    if level is False:
        return Access.DENY.value
    return level


def apply_access(bitmask: Bitmask, access: str) -> Bitmask:
    if access == Access.FULL:
        bitmask.value = bitmask.full
    elif access == Access.DENY:
        bitmask.value = 0
    elif access in bitmask.flags:
        # Only turns this bit on; flags granted earlier stay set.
        bitmask.set_flag(access)
    else:
        raise ValueError(f"cannot grant access: {access}")
    return bitmask


def normalize_token(name: str) -> str:
    return _WHITESPACE_RE.sub("_", name.strip()).lower()

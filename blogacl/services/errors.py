from __future__ import annotations

from enum import StrEnum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    VETOED = "vetoed"
    STORE_FAILURE = "store_failure"


class AccessControlError(Exception):
    kind: ErrorKind


class NotFoundError(AccessControlError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(AccessControlError):
    kind = ErrorKind.ALREADY_EXISTS


class VetoedError(AccessControlError):
    kind = ErrorKind.VETOED


class StoreFailureError(AccessControlError):
    kind = ErrorKind.STORE_FAILURE


def commit_or_raise(session: Session, conflict_message: str | None = None) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        if conflict_message is not None:
            raise AlreadyExistsError(conflict_message) from exc
        raise StoreFailureError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreFailureError(str(exc)) from exc


def flush_or_raise(session: Session, conflict_message: str | None = None) -> None:
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        if conflict_message is not None:
            raise AlreadyExistsError(conflict_message) from exc
        raise StoreFailureError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreFailureError(str(exc)) from exc

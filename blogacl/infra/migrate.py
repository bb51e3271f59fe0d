from __future__ import annotations

import argparse

from alembic import command
from alembic.config import Config

ALEMBIC_INI = "alembic.ini"


def _config() -> Config:
    return Config(ALEMBIC_INI)


def run_upgrade(revision: str = "head") -> None:
    command.upgrade(_config(), revision)


def run_downgrade(revision: str) -> None:
    command.downgrade(_config(), revision)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Apply blogacl schema migrations.")
    parser.add_argument("direction", choices=("upgrade", "downgrade"), nargs="?", default="upgrade")
    parser.add_argument("revision", nargs="?", default=None)
    args = parser.parse_args(argv)
    if args.direction == "downgrade":
        run_downgrade(args.revision or "-1")
    else:
        run_upgrade(args.revision or "head")


if __name__ == "__main__":
    main()

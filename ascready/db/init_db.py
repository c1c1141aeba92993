# FILE: ascready/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from ascready.core.logging import setup_logging
from ascready.db.base import Base
from ascready.db.session import engine as default_engine

# Import all models so metadata is complete
import ascready.models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine | None = None, *, drop: bool = False) -> None:
    eng = engine or default_engine
    if drop:
        Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    logger.info("Tables ready: %s", sorted(inspect(eng).get_table_names()))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create readiness tables")
    parser.add_argument("--drop", action="store_true", help="drop all tables first")
    args = parser.parse_args()
    setup_logging()
    init_db(drop=args.drop)


if __name__ == "__main__":
    main()

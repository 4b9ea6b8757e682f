"""Run Alembic migrations in-process against the application's engine."""

from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Engine

from shared.core import get_logger
from . import db

logger = get_logger(__name__)

SCRIPT_LOCATION = Path(__file__).resolve().parent.parent / "alembic"


def alembic_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    return cfg


def run_migrations(engine: Optional[Engine] = None, revision: str = "head") -> None:
    engine = engine or db.engine
    logger.info(f"Running database migrations to {revision}")
    cfg = alembic_config()
    with engine.begin() as connection:
        cfg.attributes["connection"] = connection
        command.upgrade(cfg, revision)
    logger.info("Database migrations completed")

"""Alembic migration helpers."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from flask import Flask


def _repo_root(app: Flask) -> Path:
    return Path(app.root_path).parent


def migration_files_present(app: Flask) -> bool:
    root = _repo_root(app)
    return (root / "alembic.ini").exists() and (root / "migrations").exists()


def alembic_config(app: Flask) -> Config:
    """Alembic Config pointed at the app's database."""

    root = _repo_root(app)
    cfg = Config(str(root / "alembic.ini"))
    cfg.set_main_option("script_location", str(root / "migrations"))
    cfg.set_main_option("sqlalchemy.url", app.config["SQLALCHEMY_DATABASE_URI"])
    cfg.attributes["configure_logger"] = False
    return cfg


def run_migrations(app: Flask) -> None:
    """Upgrade the database to the latest revision."""

    command.upgrade(alembic_config(app), "head")

import logging
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator

from fastapi import Depends, Header
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

Base = declarative_base()

# One SQLite file per profile; defaults to <repo>/profiles
PROFILES_DIR = Path(
    os.getenv("KASBOEK_DATA_DIR", str(Path(__file__).parent.parent.parent / "profiles"))
)
ALEMBIC_DIR = Path(__file__).parent.parent / "alembic"

DEFAULT_PROFILE = "default"
DEMO_PROFILE = "sample"

_session_factories: dict[str, sessionmaker] = {}


def profile_key(name: str) -> str:
    """Lowercase, strip anything outside [a-z0-9_-], cap at 50 chars."""
    return re.sub(r"[^a-z0-9_-]", "", name.lower())[:50] or DEFAULT_PROFILE


def profile_db_url(profile: str) -> str:
    return f"sqlite:///{PROFILES_DIR / f'{profile}.db'}"


def session_factory(profile: str) -> sessionmaker:
    """Engine + sessionmaker for a profile, created on first use."""
    key = profile_key(profile)
    factory = _session_factories.get(key)
    if factory is None:
        PROFILES_DIR.mkdir(parents=True, exist_ok=True)
        engine = create_engine(profile_db_url(key), connect_args={"check_same_thread": False})
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        _session_factories[key] = factory
    return factory


@contextmanager
def profile_session(profile: str) -> Iterator[Session]:
    db = session_factory(profile)()
    try:
        yield db
    finally:
        db.close()


def _migrate(db_url: str, fresh: bool) -> None:
    """Bring a profile database to the head revision.

    A fresh file was just built by ``create_all`` with the current schema and
    is only stamped; an existing file is upgraded.
    """
    from alembic import command
    from alembic.config import Config

    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", db_url)
    if fresh:
        command.stamp(cfg, "head")
    else:
        command.upgrade(cfg, "head")


def init_profile_db(name: str) -> str:
    """Create, migrate and seed one profile database. Returns the profile key."""
    from .services.seeder import seed_default_config, seed_demo_data, seed_rules

    key = profile_key(name)
    fresh = not (PROFILES_DIR / f"{key}.db").exists()
    session_factory(key)
    _migrate(profile_db_url(key), fresh)

    with profile_session(key) as db:
        seed_rules(db)
        seed_default_config(db)
        if key == DEMO_PROFILE:
            seed_demo_data(db)
    logger.info("Profile %r ready (%s)", key, "created" if fresh else "migrated")
    return key


def get_profile_name(x_profile: str = Header(default=DEFAULT_PROFILE)) -> str:
    return profile_key(x_profile)


def get_db(profile: str = Depends(get_profile_name)) -> Generator[Session, None, None]:
    with profile_session(profile) as db:
        yield db

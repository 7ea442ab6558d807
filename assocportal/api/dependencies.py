from typing import Generator

from sqlalchemy.orm import Session

from .. import config as app_config


def get_db() -> Generator[Session, None, None]:
    db = app_config.SessionLocal()
    try:
        yield db
    finally:
        db.close()

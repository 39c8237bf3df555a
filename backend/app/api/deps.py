from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.db.session import SessionLocal
from app.models.provider import Provider


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_provider(provider_id: str, db: Session = Depends(get_db)) -> Provider:
    provider = db.get(Provider, provider_id)
    if provider is None:
        raise ResourceNotFoundError("Provider", provider_id)
    return provider

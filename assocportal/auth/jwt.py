import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..config import settings
from ..core.errors import AuthenticationRequired
from ..models.models import User, utcnow

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify an identity-provider token and return its claims."""
    options = {"verify_aud": settings.auth_jwt_audience is not None}
    kwargs: Dict[str, Any] = {"algorithms": [settings.auth_jwt_algorithm], "options": options}
    if settings.auth_jwt_audience:
        kwargs["audience"] = settings.auth_jwt_audience
    if settings.auth_jwt_issuer:
        kwargs["issuer"] = settings.auth_jwt_issuer
    return jwt.decode(token, settings.auth_jwt_secret, **kwargs)


def sync_user_from_claims(db: Session, claims: Dict[str, Any]) -> User:
    """Create or refresh the local mirror of the calling identity."""
    external_id = claims.get("sub")
    if not external_id:
        raise AuthenticationRequired()

    email = claims.get("email")
    name = claims.get("name")
    image_url = claims.get("picture") or claims.get("image_url")

    user = db.query(User).filter(User.external_id == str(external_id)).first()
    if user is None:
        user = User(
            external_id=str(external_id),
            email=email.lower() if email else None,
            name=name,
            image_url=image_url,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Registered user %s from identity provider.", user.id)
        return user

    changed = False
    for field, value in (("email", email.lower() if email else None), ("name", name), ("image_url", image_url)):
        if value and getattr(user, field) != value:
            setattr(user, field, value)
            changed = True
    if changed:
        user.updated_at = utcnow()
        db.commit()
        db.refresh(user)
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not credentials:
        return None
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return sync_user_from_claims(db, claims)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise AuthenticationRequired()
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        logger.info("Rejected identity token that failed verification.")
        raise AuthenticationRequired()
    return sync_user_from_claims(db, claims)

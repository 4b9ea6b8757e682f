from fastapi import Depends, Request
from sqlalchemy.orm import Session

from shared.core import set_request_context
from ordertrack.application.access import Actor, resolve_actor
from ordertrack.application.errors import UnauthorizedError
from ordertrack.application.security import decode_access_token, issued_at
from ordertrack.infrastructure.db import get_db

BEARER_PREFIX = "Bearer "


def current_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Missing token")
    claims = decode_access_token(auth_header[len(BEARER_PREFIX):].strip())
    if not claims or not claims.get("sub"):
        raise UnauthorizedError("Invalid token")
    actor = resolve_actor(db, claims["sub"], issued_at(claims))
    set_request_context(actor_id=actor.user_id)
    return actor

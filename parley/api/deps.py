"""FastAPI dependencies for the API layer."""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from parley.core.security import user_id_from_token
from parley.models import Destination
from parley.schemas import DestinationRef

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_current_user_id(token: str | None = Depends(oauth2_scheme)) -> str:
    """Resolve the caller's user id from the bearer token."""

    return user_id_from_token(token)


def to_destination(ref: DestinationRef) -> Destination:
    return Destination(ref.kind, ref.id)

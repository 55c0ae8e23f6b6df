"""
Request-scoped dependencies shared by the routers.

Authentication is handled upstream; the acting user arrives in the
X-User-Id header and only has to exist.
"""
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.errors import UserNotFoundError
from app.db.base import get_db
from app.models.user import User


def get_current_user_id(
    x_user_id: Annotated[int, Header(ge=1, description="Id of the acting user.", examples=[1])],
    db: Session = Depends(get_db),
) -> int:
    if db.get(User, x_user_id) is None:
        raise UserNotFoundError(x_user_id)
    return x_user_id

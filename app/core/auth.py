from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.db.mongo import get_db
from app.repositories.user_repo import UserRepository
from app.models.user import UserInDB

security = HTTPBearer(auto_error=False)

def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": user_id,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp())
    }

    return jwt.encode(
        payload,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM
    )

def decode_access_token(token: str) -> str:
    """Return the user id carried by a token, or raise 401."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token")
    return user_id

def get_user_repository(db = Depends(get_db)) -> UserRepository:
    return UserRepository(db)

async def get_current_user(
    credentials = Depends(security),
    user_repo: UserRepository = Depends(get_user_repository)
) -> UserInDB:
    """Get current user from JWT token."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    user_id = decode_access_token(credentials.credentials)

    user = await user_repo.get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user

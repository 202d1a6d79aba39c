# src/utils/security.py
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from core.config import settings
from utils.logger import setup_logger
from utils.time_utils import utc_now

logger = setup_logger("SECURITY")

SECRET_KEY: str = settings.SECRET_KEY
ALGORITHM: str = settings.ALGORITHM


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed bearer token; ``sub`` carries the user id"""
    to_encode = data.copy()
    expire = utc_now() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    # Ensure the subject is always a string
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])

    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid token, None when the signature or expiry check fails"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token rejected: {e}")
        return None

from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import ENV_PATH, Settings

# Use PBKDF2 to avoid bcrypt backend compatibility issues on some Windows/Python setups.
pwd_context = CryptContext(schemes=['pbkdf2_sha256'], deprecated='auto')


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(settings: Settings, user_id: int, email: str) -> str:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f'JWT_SECRET missing in {ENV_PATH}',
        )
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        'sub': str(user_id),
        'email': email,
        'exp': expire,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_user_id(settings: Settings, token: str) -> int:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid or expired token')

    user_id = payload.get('sub')
    if not user_id or not str(user_id).isdigit():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid token payload')
    return int(user_id)


def public_user(user: dict) -> dict:
    return {
        'id': user['id'],
        'fullName': user['full_name'],
        'email': user['email'],
        'examInterest': user['exam_interest'],
    }

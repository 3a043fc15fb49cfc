from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from party_market.config import get_settings

ROLE_HOST = "host"
ROLE_PLAYER = "player"


def create_access_token(data: dict) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_player_token(room_id: str, player_id: int) -> str:
    return create_access_token({"sub": str(player_id), "room_id": room_id, "role": ROLE_PLAYER})


def create_host_token(room_id: str) -> str:
    return create_access_token({"sub": room_id, "room_id": room_id, "role": ROLE_HOST})


def decode_access_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None

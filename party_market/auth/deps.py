from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from party_market.auth.jwt import ROLE_HOST, ROLE_PLAYER, decode_access_token

security = HTTPBearer()


@dataclass
class PlayerIdentity:
    room_id: str
    player_id: int


def _payload(credentials: HTTPAuthorizationCredentials) -> dict:
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload


async def get_current_player(
    room_id: str,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> PlayerIdentity:
    """Player token for the room named in the path."""
    payload = _payload(credentials)
    if payload.get("role") != ROLE_PLAYER or payload.get("sub") is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if payload.get("room_id") != room_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is for another room")
    return PlayerIdentity(room_id=room_id, player_id=int(payload["sub"]))


async def require_host(
    room_id: str,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Host token for the room named in the path; returns the room id."""
    payload = _payload(credentials)
    if payload.get("role") != ROLE_HOST:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the host can do this")
    if payload.get("room_id") != room_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is for another room")
    return room_id

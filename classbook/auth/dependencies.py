import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from classbook.auth import jwt_handler
from classbook.database import get_db
from classbook.schemas import Identity
from classbook.services.identity import DirectoryIdentityProvider

security = HTTPBearer()


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Identity:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    # The directory is authoritative for role and approval; token claims may be stale.
    identity = DirectoryIdentityProvider(db).resolve(user_id)
    if identity is None:
        raise HTTPException(status_code=401, detail="User not found")
    return identity

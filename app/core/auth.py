import hmac
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPBearer
from app.core.config import settings
from app.schemas.auth import Operator

security = HTTPBearer()

def create_access_token(operator_id: str, expires_delta: timedelta | None = None) -> str:
    """Create JWT access token for a back-office operator."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": operator_id,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp())
    }

    encoded_jwt = jwt.encode(
        payload,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt

async def get_current_operator(credentials = Depends(security)) -> Operator:
    """Get current operator from JWT token."""
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    operator_id: str | None = payload.get("sub")
    if operator_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    return Operator(id=operator_id)

gateway_key = APIKeyHeader(name="X-Gateway-Secret", auto_error=False)

async def verify_gateway_secret(secret: str | None = Depends(gateway_key)) -> None:
    """Accept only callbacks carrying the shared gateway secret."""
    if not secret or not hmac.compare_digest(secret, settings.GATEWAY_WEBHOOK_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid gateway secret"
        )

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from orderflow.config import load_settings


def verify_token(authorization: str = Header(...)) -> int:
    """Resolve the bearer token to the vendor id it was issued for."""
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError(scheme)
        claims = jwt.decode(token, load_settings().jwt_secret, algorithms=["HS256"])
        return int(claims["sub"])
    except (ValueError, KeyError, TypeError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")

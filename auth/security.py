from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi import Depends, HTTPException, status
from config import config
import secrets

# Tokens come from the comma separated VALID_TOKENS setting
bearer_scheme = HTTPBearer()

def is_valid_token(token: str) -> bool:
    return any(secrets.compare_digest(token, valid) for valid in config.valid_tokens)

def get_current_client(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Validates the Bearer token for every secured endpoint."""
    if credentials.scheme.lower() != "bearer" or not is_valid_token(credentials.credentials):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # Returns the token value, which can be used to identify the client if needed
    return credentials.credentials

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt


class TokenError(Exception):
    pass


class TokenMissing(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


class TokenExpired(TokenInvalid):
    pass


def read_cookie_token(cookies: Mapping[str, str], name: str = "token") -> str:
    token = cookies.get(name)
    if not token:
        raise TokenMissing(f"No {name!r} cookie presented")
    return token


class TokenService:
    """Issues and verifies stateless HS256 identity tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expires_minutes: int = 60) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = timedelta(minutes=expires_minutes)

    def issue(self, claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = claims.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({"iat": now, "exp": now + (expires_delta or self.expires_delta)})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired(str(exc)) from exc
        except JWTError as exc:
            raise TokenInvalid(str(exc)) from exc

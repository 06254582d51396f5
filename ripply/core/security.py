import uuid

import jwt

from ripply.core.config import settings


class TokenError(Exception):
    pass


def decode_access_token(token: str) -> dict:
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise TokenError("invalid token") from exc
    return payload


def subject_user_id(payload: dict) -> uuid.UUID:
    subject = payload.get("sub")
    if not subject:
        raise TokenError("token has no subject")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise TokenError("token subject is not a user id") from exc

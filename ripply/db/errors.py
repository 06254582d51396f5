from sqlalchemy.exc import DBAPIError

UNDEFINED_TABLE = "42P01"


def sqlstate_of(exc: BaseException) -> str | None:
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_missing_relation(exc: BaseException) -> bool:
    return sqlstate_of(exc) == UNDEFINED_TABLE

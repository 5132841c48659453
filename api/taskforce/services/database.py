from __future__ import annotations

import json
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Any, AsyncIterator, Iterator
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from taskforce.core.auth import Principal, anonymous_claims
from taskforce.core.config import get_settings
from taskforce.services.query import IDENTIFIER_RE, Query, compile_count, compile_query


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unreachable."""


class MissingDatabaseConfigError(RepositoryUnavailableError):
    """Raised when no database connection string is configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules or uniqueness."""


class RepositoryConstraintError(RepositoryError):
    """Raised when the database rejects a write on a check or foreign-key constraint."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""

    def __init__(self, message: str, field_errors: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or []


@dataclass(slots=True)
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


class DatabaseSession:
    """One connection inside one transaction, scoped to a single caller."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def execute(self, query: Query) -> QueryResult:
        sql, params = compile_query(query)
        with _translate_errors():
            if query.action == "select" or query.returning_columns:
                records = await self._conn.fetch(sql, *params)
            else:
                await self._conn.execute(sql, *params)
                records = []
            count = None
            if query.action == "select" and query.count:
                count_sql, count_params = compile_count(query)
                count = int(await self._conn.fetchval(count_sql, *count_params) or 0)
        return QueryResult(rows=[_record_to_dict(record) for record in records], count=count)

    async def rpc(self, name: str, **args: Any) -> list[dict[str, Any]]:
        if not IDENTIFIER_RE.match(name):
            raise RepositoryValidationError(f"invalid function name: {name!r}")
        params: list[Any] = []
        named: list[str] = []
        for key, value in args.items():
            if not IDENTIFIER_RE.match(key):
                raise RepositoryValidationError(f"invalid function argument: {key!r}")
            params.append(value)
            named.append(f'"{key}" => ${len(params)}')
        with _translate_errors():
            records = await self._conn.fetch(f'select * from public."{name}"({", ".join(named)})', *params)
        return [_record_to_dict(record) for record in records]

    async def rpc_scalar(self, name: str, **args: Any) -> Any:
        rows = await self.rpc(name, **args)
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[DatabaseSession]:
        async with self._conn.transaction():
            yield self


async def is_admin(session: DatabaseSession) -> bool:
    return bool(await session.rpc_scalar("is_admin"))


async def is_superadmin(session: DatabaseSession) -> bool:
    return bool(await session.rpc_scalar("is_superadmin"))


async def user_can_edit_project(session: DatabaseSession, project_id: str) -> bool:
    return bool(await session.rpc_scalar("user_can_edit_project", pid=project_id))


class SupabaseDatabase:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float,
        apply_rls: bool,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self.apply_rls = apply_rls
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def session(self, principal: Principal | None = None) -> AsyncIterator[DatabaseSession]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if self.apply_rls:
                        await self._apply_claims(conn, principal)
                    yield DatabaseSession(conn)
        except (OSError, asyncpg.InterfaceError, pg_exc.PostgresConnectionError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _apply_claims(self, conn: asyncpg.Connection, principal: Principal | None) -> None:
        # Row-level security reads auth.uid() and the role from these transaction-local settings.
        claims = principal.jwt_claims() if principal is not None else anonymous_claims()
        await conn.execute(
            "select set_config('request.jwt.claims', $1, true), set_config('request.jwt.claim.sub', $2, true)",
            json.dumps(claims),
            claims.get("sub", ""),
        )
        await conn.execute("set local role authenticated" if principal is not None else "set local role anon")

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise MissingDatabaseConfigError("SPT_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
                init=_init_connection,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


async def _init_connection(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except pg_exc.UniqueViolationError as exc:
        raise RepositoryConflictError(_pg_message(exc)) from exc
    except (pg_exc.CheckViolationError, pg_exc.ForeignKeyViolationError, pg_exc.NotNullViolationError) as exc:
        raise RepositoryConstraintError(_pg_message(exc)) from exc
    except pg_exc.InsufficientPrivilegeError as exc:
        raise RepositoryForbiddenError(_pg_message(exc)) from exc
    except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
        raise RepositoryValidationError(_pg_message(exc)) from exc
    except (OSError, asyncpg.InterfaceError, pg_exc.PostgresConnectionError) as exc:
        raise RepositoryUnavailableError("database unavailable") from exc
    except asyncpg.PostgresError as exc:
        raise RepositoryError(_pg_message(exc)) from exc


def _pg_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return str(message)


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return {key: _coerce_value(value) for key, value in record.items()}


def _coerce_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_coerce_value(item) for item in value]
    return value


@lru_cache
def get_database() -> SupabaseDatabase:
    settings = get_settings()
    return SupabaseDatabase(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
        apply_rls=settings.database_apply_rls,
    )

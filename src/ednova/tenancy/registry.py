"""
Tenant store registry.

Maps a tenant name onto one live database handle (engine + session factory).
Handles are created on first use (provisioning a missing PostgreSQL database
first), reused afterwards and evicted when the driver reports that the
connection is gone. Concurrent first resolutions of the same name share a
single connection attempt.
"""

from __future__ import annotations

import asyncio
import enum
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import URL, ExceptionContext
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ednova.db.base import Base
from ednova.errors import InvalidTenantError, TenantConnectionError
from ednova.tenancy.locks import KeyedLocks
from ednova.tenancy.provisioning import EngineFactory, ensure_database

logger = structlog.get_logger()


class TenantState(str, enum.Enum):
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    ERRORED = "errored"


@dataclass
class TenantHandle:
    """A tenant's data-store handle. Owned by the registry, borrowed by requests."""

    name: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    state: TenantState = TenantState.CONNECTING
    user_locks: KeyedLocks = field(default_factory=KeyedLocks)

    @property
    def is_live(self) -> bool:
        return self.state is TenantState.READY

    def session(self) -> AsyncSession:
        """Open a new session bound to this tenant's engine."""
        return self.session_factory()


def default_engine_factory(url: str | URL, **options: Any) -> AsyncEngine:  # noqa: ANN401
    return create_async_engine(url, **options)


class TenantRegistry:
    """Process-wide cache of tenant handles."""

    def __init__(
        self,
        url_template: str,
        *,
        name_pattern: str = r"^[a-z0-9][a-z0-9_-]{1,62}$",
        allowlist: Iterable[str] = (),
        create_schema: bool = True,
        maintenance_database: str = "postgres",
        engine_factory: EngineFactory | None = None,
        engine_options: dict[str, Any] | None = None,
    ) -> None:
        if "{tenant}" not in url_template:
            msg = "Tenant database URL template must contain '{tenant}'"
            raise ValueError(msg)
        self._url_template = url_template
        self._name_re = re.compile(name_pattern)
        self._allowlist = frozenset(allowlist)
        self._create_schema = create_schema
        self._maintenance_database = maintenance_database
        self._engine_factory = engine_factory or default_engine_factory
        self._engine_options = engine_options if engine_options is not None else _default_engine_options(url_template)
        self._handles: dict[str, TenantHandle] = {}
        self._pending: dict[str, asyncio.Task[TenantHandle]] = {}
        self._retired: list[AsyncEngine] = []

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def validate_name(self, name: str) -> str:
        """Return the name if it may be used as a storage identifier."""
        if not self._name_re.fullmatch(name):
            raise InvalidTenantError
        if self._allowlist and name not in self._allowlist:
            raise InvalidTenantError
        return name

    async def resolve(self, name: str) -> TenantHandle:
        """Return a live handle for ``name``, connecting on first use.

        Raises:
            InvalidTenantError: the name failed validation.
            TenantConnectionError: the tenant's store could not be reached.
        """
        self.validate_name(name)

        handle = self._handles.get(name)
        if handle is not None and handle.is_live:
            return handle
        if handle is not None:
            self._evict(handle)

        task = self._pending.get(name)
        if task is None:
            task = asyncio.create_task(self._connect(name), name=f"tenant-connect:{name}")
            self._pending[name] = task
            task.add_done_callback(lambda t, n=name: self._clear_pending(n, t))
        if self._retired:
            await self._dispose_retired()
        # Shielded so one cancelled request does not abort the shared attempt.
        return await asyncio.shield(task)

    def _clear_pending(self, name: str, task: asyncio.Task[TenantHandle]) -> None:
        if self._pending.get(name) is task:
            del self._pending[name]
        if not task.cancelled():
            # Mark the exception retrieved; waiters already received it.
            task.exception()

    async def _connect(self, name: str) -> TenantHandle:
        url = self._url_template.replace("{tenant}", name)
        log = logger.bind(tenant=name)
        if self._create_schema:
            try:
                await ensure_database(
                    url,
                    maintenance_database=self._maintenance_database,
                    engine_factory=self._engine_factory,
                )
            except Exception as exc:
                log.error("tenant_provision_failed", error=str(exc))
                raise TenantConnectionError(name) from exc

        try:
            engine = self._engine_factory(url, **self._engine_options)
        except Exception as exc:
            log.error("tenant_engine_create_failed", error=str(exc))
            raise TenantConnectionError(name) from exc

        handle = TenantHandle(
            name=name,
            engine=engine,
            session_factory=async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if self._create_schema:
                    await conn.run_sync(Base.metadata.create_all)
        except Exception as exc:
            handle.state = TenantState.ERRORED
            await engine.dispose()
            log.error("tenant_connect_failed", error=str(exc))
            raise TenantConnectionError(name) from exc

        self._watch(handle)
        handle.state = TenantState.READY
        self._handles[name] = handle
        log.info("tenant_connected")
        return handle

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _watch(self, handle: TenantHandle) -> None:
        def on_error(ctx: ExceptionContext) -> None:
            if ctx.is_disconnect:
                logger.warning("tenant_disconnected", tenant=handle.name, error=str(ctx.original_exception))
                handle.state = TenantState.DISCONNECTED
                self._evict(handle)

        event.listen(handle.engine.sync_engine, "handle_error", on_error)

    def _evict(self, handle: TenantHandle) -> None:
        if handle.state is TenantState.READY:
            handle.state = TenantState.DISCONNECTED
        if self._handles.get(handle.name) is handle:
            del self._handles[handle.name]
            # Disposed later; eviction can fire from inside a driver callback.
            self._retired.append(handle.engine)

    async def _dispose_retired(self) -> None:
        while self._retired:
            engine = self._retired.pop()
            try:
                await engine.dispose()
            except Exception:
                logger.warning("tenant_engine_dispose_failed", exc_info=True)

    async def evict(self, name: str) -> bool:
        """Drop the cached handle for ``name``. Returns True if one was cached."""
        handle = self._handles.get(name)
        if handle is None:
            return False
        self._evict(handle)
        await self._dispose_retired()
        logger.info("tenant_evicted", tenant=name)
        return True

    async def close(self) -> None:
        """Dispose every engine. Used at application shutdown."""
        for task in list(self._pending.values()):
            task.cancel()
        for handle in list(self._handles.values()):
            self._evict(handle)
        await self._dispose_retired()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, name: str) -> TenantHandle | None:
        return self._handles.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def summary(self) -> dict[str, str]:
        return {name: handle.state.value for name, handle in sorted(self._handles.items())}


def _default_engine_options(url_template: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    if url_template.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"statement_cache_size": 0}
    return options


def build_registry(settings: Any) -> TenantRegistry:  # noqa: ANN401
    """Create the registry from application settings."""
    options = _default_engine_options(settings.tenant_database_url_template)
    if not settings.tenant_database_url_template.startswith("sqlite"):
        options["pool_size"] = settings.tenant_pool_size
        options["max_overflow"] = settings.tenant_max_overflow
    return TenantRegistry(
        settings.tenant_database_url_template,
        name_pattern=settings.tenant_name_pattern,
        allowlist=settings.tenant_allowlist,
        create_schema=settings.tenant_auto_create_schema,
        maintenance_database=settings.tenant_maintenance_database,
        engine_options=options,
    )

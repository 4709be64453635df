"""
FILE: src/core/backend.py
Request-scoped backend session: tenant context binding, tenant-scoped
queries and the procedure (RPC) registry.
"""

from typing import Any, Callable, Dict, Generator, Optional, Type, TypeVar
from uuid import UUID
import logging

from fastapi import Depends
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from src.core.config import settings
from src.core.database import get_session
from src.core.errors import ApiError, ErrorKind, backend_message
from src.core.result import Err, Ok, Result

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=SQLModel)

TENANT_INFO_KEY = "tenant_id"


class ProcedureError(Exception):
    """
    Raised by a procedure; surfaces to the caller as Err(kind).
    kind defaults to BackendError.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.BACKEND_ERROR):
        self.kind = kind
        super().__init__(message)


_PROCEDURES: Dict[str, Callable[..., Any]] = {}


def procedure(name: str):
    """Register a function as a named backend procedure."""
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        if name in _PROCEDURES:
            raise ValueError(f"Procedure already registered: {name}")
        _PROCEDURES[name] = fn
        return fn
    return decorator


def registered_procedures() -> Dict[str, Callable[..., Any]]:
    return dict(_PROCEDURES)


def _apply_tenant_setting(connection, tenant_id: UUID) -> None:
    # transaction-local: the pooled connection never keeps a tenant
    connection.execute(
        text("SELECT set_config(:key, :value, true)"),
        {"key": settings.DB_TENANT_SETTING, "value": str(tenant_id)},
    )


@event.listens_for(Session, "after_begin")
def _rebind_tenant_on_begin(session, transaction, connection):
    """Re-apply the tenant parameter at the start of every transaction."""
    tenant_id = session.info.get(TENANT_INFO_KEY)
    if tenant_id is not None and connection.dialect.name == "postgresql":
        _apply_tenant_setting(connection, tenant_id)


class BackendSession:
    """
    One per request. Wraps the SQLModel session and carries the tenant
    binding so every data call made through it is implicitly scoped.
    """

    def __init__(self, session: Session):
        self.session = session
        self._tenant_id: Optional[UUID] = None

    # Tenant context

    @property
    def tenant_id(self) -> Optional[UUID]:
        return self._tenant_id

    def set_tenant_context(self, tenant_id: UUID) -> Result[UUID]:
        """
        Bind a tenant to this request. Re-binding the same id is a no-op;
        a different id is rejected and the first binding is kept.
        """
        if self._tenant_id is not None:
            if self._tenant_id == tenant_id:
                return Ok(tenant_id)
            logger.error(
                f"Rejected tenant rebind within one request: {self._tenant_id} -> {tenant_id}"
            )
            return Err(ErrorKind.CONFLICTING_CONTEXT, "Tenant context already bound")

        try:
            if self.session.get_bind().dialect.name == "postgresql":
                _apply_tenant_setting(self.session.connection(), tenant_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to set tenant context {tenant_id}: {backend_message(e)}")
            return Err(ErrorKind.PROPAGATION_ERROR, backend_message(e))

        self._tenant_id = tenant_id
        self.session.info[TENANT_INFO_KEY] = tenant_id
        return Ok(tenant_id)

    def require_tenant(self) -> UUID:
        if self._tenant_id is None:
            raise ApiError(ErrorKind.PROPAGATION_ERROR, "No tenant context")
        return self._tenant_id

    def close(self) -> None:
        self.session.info.pop(TENANT_INFO_KEY, None)
        self._tenant_id = None

    # Tenant-scoped data access

    def select(self, model: Type[M]):
        """select(model) restricted to the bound tenant."""
        return select(model).where(model.tenant_id == self.require_tenant())  # type: ignore

    def get(self, model: Type[M], record_id: Any) -> Optional[M]:
        """Primary-key lookup that hides rows belonging to other tenants."""
        record = self.session.get(model, record_id)
        if record is None or getattr(record, "tenant_id", None) != self.require_tenant():
            return None
        return record

    def add(self, record: SQLModel) -> SQLModel:
        """Stage a row, stamping the bound tenant on it."""
        tenant_id = self.require_tenant()
        current = getattr(record, "tenant_id", None)
        if current is None:
            record.tenant_id = tenant_id  # type: ignore
        elif current != tenant_id:
            raise ProcedureError("Row belongs to a different tenant")
        self.session.add(record)
        return record

    # Procedures

    def rpc(self, name: str, **params: Any) -> Result[Any]:
        """
        Run a registered procedure in its own transaction.
        Any failure rolls back and comes back as Err(BackendError).
        """
        fn = _PROCEDURES.get(name)
        if fn is None:
            return Err(ErrorKind.BACKEND_ERROR, f"Could not find the function {name}")
        try:
            data = fn(self, **params)
            self.session.commit()
            return Ok(data)
        except ProcedureError as e:
            self.session.rollback()
            logger.warning(f"Procedure {name} rejected: {e}")
            return Err(e.kind, str(e))
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Procedure {name} failed: {e}")
            return Err(ErrorKind.BACKEND_ERROR, backend_message(e))


def get_backend(session: Session = Depends(get_session)) -> Generator[BackendSession, None, None]:
    """Per-request BackendSession. Use as FastAPI dependency."""
    db = BackendSession(session)
    try:
        yield db
    finally:
        db.close()


# Built-in procedures

@procedure("set_tenant_context")
def set_tenant_context_procedure(db: BackendSession, p_tenant_id: UUID) -> bool:
    result = db.set_tenant_context(p_tenant_id)
    if isinstance(result, Err):
        raise ProcedureError(result.message or result.kind.value, result.kind)
    return True


@procedure("get_tenant_id")
def get_tenant_id_procedure(db: BackendSession) -> Optional[UUID]:
    return db.tenant_id

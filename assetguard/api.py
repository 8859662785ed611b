"""
FastAPI boundary for the controller layer.

Implements:
- Exception handlers mapping AssetGuard errors to status codes
- require_permission dependency for route protection
- Accessor for the process audit logger
"""
from typing import Optional
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from assetguard.core.database.engine import get_db
from assetguard.core.exceptions import AssetGuardError
from assetguard.features.audit.sinks import AuditLogger, NullSink
from assetguard.features.authorization.engine import AuthorizationEngine
from assetguard.utils import get_logger


log = get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Unauthenticated -> 401, Forbidden -> 403, NotFound -> 404, Conflict -> 409, Validation -> 400."""

    @app.exception_handler(AssetGuardError)
    async def assetguard_error_handler(_request: Request, exc: AssetGuardError):
        log.info("%s: %s", exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def get_audit_logger(request: Request) -> AuditLogger:
    """The sink built at startup, or a NullSink before startup ran."""
    return getattr(request.app.state, "audit_logger", None) or NullSink()


def get_actor(request: Request) -> Optional[str]:
    """Actor id placed on request.state by the authentication flow."""
    return getattr(request.state, "user_id", None)


def require_permission(resource: str, action: str, instance_param: Optional[str] = None):
    """
    FastAPI dependency to require a permission key.

    Usage:
        @router.put("/documents/{document_id}")
        async def update_document(
            document_id: str,
            actor: str = Depends(require_permission("documents", "update", instance_param="document_id"))
        ):
            ...

    Args:
        resource: asset table name
        action: operation name
        instance_param: path parameter holding the record id, if the route targets one record

    Returns:
        Dependency returning the actor id when allowed

    Raises:
        UnauthenticatedError / ForbiddenError, turned into 401 / 403 by the handlers
    """
    async def permission_dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> str:
        actor = get_actor(request)
        instance_id = request.path_params.get(instance_param) if instance_param else None
        await AuthorizationEngine(db).require(actor, resource, action, instance_id)
        return actor

    return permission_dependency

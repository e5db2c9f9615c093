"""Middleware that puts the caller's tenant into the tenant context.

The tenant id is read from a claim of the bearer JWT and set as the current
tenant for the duration of the request, so query filters and write
enforcement pick it up without any per-endpoint code. The request id is set
alongside it (from X-Request-ID or generated), so tenancy log lines and
audit records of one request share it.

A missing, malformed or invalid token leaves the request without tenant
context. Under NOT_NULL_DENY_ACCESS that means empty reads and rejected
writes; authentication itself is the job of the application's own
dependencies.
"""

from typing import Any, Callable, Optional

import jwt
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .context import reset_current_tenant_id, set_current_tenant_id
from .exceptions import ConfigurationError
from ..config import Settings, get_settings
from ..observability import generate_request_id, get_logger, reset_request_id, set_request_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Extract the tenant id from the bearer token into the tenant context.

    Also stores it on ``request.state.tenant_id``. Secret, algorithm and
    claim default to JWT_SECRET, JWT_ALGORITHM and TENANT_CLAIM.

    Usage:
        app.add_middleware(TenantContextMiddleware, key_type=uuid.UUID)
    """

    def __init__(
        self,
        app: ASGIApp,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        claim: Optional[str] = None,
        key_type: Callable[[Any], Any] = str,
        settings: Optional[Settings] = None,
    ):
        super().__init__(app)
        settings = settings or get_settings()
        self.secret = secret or settings.JWT_SECRET
        if not self.secret:
            raise ConfigurationError("JWT_SECRET is not set; TenantContextMiddleware cannot verify tokens")
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.claim = claim or settings.TENANT_CLAIM
        self.key_type = key_type

    def extract_tenant_id(self, request: Request) -> Optional[Any]:
        """Tenant id from the Authorization header, or None."""
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None

        try:
            payload = jwt.decode(parts[1], self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as e:
            logger.info(f"Ignoring invalid bearer token: {e}")
            return None

        raw = payload.get(self.claim)
        if raw is None:
            return None

        try:
            return self.key_type(raw)
        except (TypeError, ValueError):
            logger.warning(f"Tenant claim {self.claim!r} is not a valid {getattr(self.key_type, '__name__', self.key_type)}")
            return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        tenant_id = self.extract_tenant_id(request)
        request.state.tenant_id = tenant_id

        request_token = set_request_id(request_id)
        tenant_token = set_current_tenant_id(tenant_id)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            reset_current_tenant_id(tenant_token)
            reset_request_id(request_token)


def get_tenant_id_from_request(request: Request) -> Optional[Any]:
    """Tenant id set by TenantContextMiddleware, or None."""
    return getattr(request.state, "tenant_id", None)

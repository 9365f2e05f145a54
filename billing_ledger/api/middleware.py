"""Request context for structured logs"""

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from billing_ledger.core.config import settings
from billing_ledger.core.logging import request_id_var, tenant_id_var

TENANT_PATH = re.compile(rf"^{re.escape(settings.API_V1_STR)}/tenants/([^/]+)")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and expose it, with the tenant, to the logs"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        match = TENANT_PATH.match(request.url.path)

        request_token = request_id_var.set(request_id)
        tenant_token = tenant_id_var.set(match.group(1) if match else None)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(request_token)
            tenant_id_var.reset(tenant_token)

        response.headers["X-Request-ID"] = request_id
        return response

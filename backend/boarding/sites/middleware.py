"""
Middleware for request-scoped site concerns.
"""

import logging
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from boarding.core.config import settings
from boarding.sites.constants import SITE_HEADER, SITE_QUERY_PARAM

logger = logging.getLogger(__name__)


def clean_site_ref(value):
    """Strip whitespace and any trailing ``?...`` fragment some clients append to the handle."""
    if value is None:
        return None
    text = str(value).split("?", 1)[0].strip()
    return text or None


def extract_site_ref(request):
    header_name = settings.SITE_HEADER_NAME or SITE_HEADER
    param_name = settings.SITE_QUERY_PARAM or SITE_QUERY_PARAM
    return clean_site_ref(request.headers.get(header_name)) or clean_site_ref(
        request.query_params.get(param_name)
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Attaches a request_id and the raw site selection to request.state and
    echoes the request id on responses.
    """

    async def dispatch(self, request, call_next):
        request_id = (
            getattr(request.state, "request_id", None)
            or request.headers.get("X-Request-ID")
            or request.headers.get("X-Request-Id")
            or str(uuid4())
        )
        request.state.request_id = request_id
        request.state.site_ref = extract_site_ref(request)

        logger.debug(
            "request.start",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "site_ref": request.state.site_ref,
            },
        )
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

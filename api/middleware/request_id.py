"""
Request ID 中间件

生成或透传 X-Request-ID，并把请求方身份绑定进 structlog 上下文，
使一次结账或 webhook 投递产生的日志可以串起来。
"""
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


def _forwarded_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Per-request correlation id plus caller context for logs."""

    HEADER_NAME = "X-Request-ID"
    # 上游网关注入的请求方身份，仅用于日志
    IDENTITY_HEADERS = (("X-User-Id", "user_id"), ("X-User-Role", "user_role"))

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = _forwarded_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
        }
        for header, key in self.IDENTITY_HEADERS:
            value = request.headers.get(header)
            if value:
                context[key] = value
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    """Forwarded client address of the current request, if any."""
    return client_ip_var.get()

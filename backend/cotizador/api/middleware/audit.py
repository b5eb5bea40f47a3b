"""
Middleware de auditoría de peticiones.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable
import logging
import time

logger = logging.getLogger(__name__)


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    Registra método, ruta, estado y latencia de cada petición.
    Expone la latencia en el header X-Process-Time.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            "%s %s - %d - %.3fs - IP: %s",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
            request.client.host if request.client else "unknown",
        )
        return response

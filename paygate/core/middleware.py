"""
Request/Response logging middleware.

Payment bodies carry card numbers, cvv codes and wallet emails. The
middleware never logs a body as-is: for payment routes it logs a summary
(payment id, method, amount, currency) and for everything else a redacted
copy. With LOG_REQUESTS on, the raw body is cached on request.state.body.
"""

import time
import logging
import json
import uuid
from typing import Any, Callable, Dict, Optional, Set
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from paygate.core.monitoring import error_monitor


SENSITIVE_KEYS: Set[str] = {
    "password", "secret", "client_secret", "token", "api_key", "apikey",
    "authorization", "card_number", "cardnumber", "pan", "cvv", "cvc",
    "expiry", "email", "cardholder_name",
}

SENSITIVE_HEADERS: Set[str] = {
    "authorization", "cookie", "set-cookie", "x-api-key", "x-monitoring-key",
}

SUMMARY_FIELDS = ("id", "method", "amount", "currency")

MAX_LOGGED_BODY = 10000


def redact(data: Any, depth: int = 0) -> Any:
    """Recursively replace sensitive values in dicts and lists."""
    if depth > 10:
        return "[DEPTH_LIMIT]"
    if isinstance(data, dict):
        return {
            key: "[REDACTED]" if str(key).lower() in SENSITIVE_KEYS else redact(value, depth + 1)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item, depth + 1) for item in data]
    return data


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: ("[REDACTED]" if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}


def payment_summary(body: bytes) -> Optional[Dict[str, Any]]:
    """Non-sensitive fields of a payment request body, or None if it is not JSON."""
    try:
        payload = json.loads(body.decode())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return {field: payload.get(field) for field in SUMMARY_FIELDS if field in payload}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with timing, a request id and redacted payment data."""

    def __init__(self, app, logger_name: str = "paygate.requests"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id

        # Config is on the app state once startup has run
        config = getattr(request.app.state, "config", None)
        log_requests = config is None or config.logging.log_requests

        if log_requests:
            # Starlette replays a body read here to the endpoint
            body = await request.body()
            request.state.body = body
            self._log_request(request, request_id, body)

        try:
            response = await call_next(request)
        except Exception as e:
            error_monitor.log_error(e, {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "process_time": time.time() - start_time,
                "context": "middleware_error",
            })
            raise

        if log_requests:
            self._log_response(request, request_id, response, time.time() - start_time)

        response.headers["X-Request-ID"] = request_id
        return response

    def _log_response(self, request: Request, request_id: str, response: Response, process_time: float):
        status_code = response.status_code
        level = logging.INFO if status_code < 400 else logging.WARNING if status_code < 500 else logging.ERROR
        self.logger.log(
            level,
            f"[{request_id}] {request.method} {request.url.path} - {status_code} - {process_time:.3f}s",
            extra={
                "request_id": request_id,
                "status_code": status_code,
                "process_time": process_time,
                "response_headers": redact_headers(dict(response.headers)),
            },
        )

    def _log_request(self, request: Request, request_id: str, body: bytes):
        client_ip = request.client.host if request.client else "unknown"
        self.logger.info(
            f"[{request_id}] {request.method} {request.url.path} - Request started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_ip,
                "headers": redact_headers(dict(request.headers)),
            },
        )

        if request.method != "POST" or not body or len(body) > MAX_LOGGED_BODY:
            return

        if request.url.path.startswith("/payments"):
            summary = payment_summary(body)
            if summary is not None:
                self.logger.info(f"[{request_id}] Payment request: {json.dumps(summary, default=str)}")
            return

        try:
            sanitized = redact(json.loads(body.decode()))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return
        self.logger.debug(f"[{request_id}] Request body: {json.dumps(sanitized)}")

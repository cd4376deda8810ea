"""
Request Log Package

In-memory log of the HTTP exchanges the service makes and receives, shown in
the demo UI.

Modules:
- recorder: Ring buffer, header redaction and the logging httpx wrapper
- routes: GET /api/logs, POST /api/logs, POST /api/logs/clear
"""

from .recorder import LoggedHttpClient, RequestLog
from .routes import logs_router

__all__ = [
    "LoggedHttpClient",
    "RequestLog",
    "logs_router",
]

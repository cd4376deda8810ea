"""
Request log endpoints used by the demo UI.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Request

from altinn_auth.logs.recorder import RequestLog
from altinn_auth.models import LogEntry

logger = logging.getLogger(__name__)

logs_router = APIRouter(prefix="/api/logs", tags=["logs"])


def get_request_log(request: Request) -> RequestLog:
    return request.app.state.app_state.request_log


@logs_router.get("", response_model=List[LogEntry], response_model_by_alias=True)
async def list_logs(request_log: RequestLog = Depends(get_request_log)) -> List[LogEntry]:
    """Recorded exchanges, newest first."""
    return request_log.entries()


@logs_router.post("")
@logs_router.post("/clear")
async def clear_logs(request_log: RequestLog = Depends(get_request_log)) -> Dict[str, str]:
    request_log.clear()
    logger.info("Request log cleared")
    return {"message": "Logs cleared"}

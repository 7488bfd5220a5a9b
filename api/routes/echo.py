"""
Websocket echo endpoint.

Sends every text frame back to the client unchanged.
"""

import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..constants import EndpointPath

logger = logging.getLogger(__name__)

router = APIRouter()


# [ENDPOINT] WS /api/v1/echo - Echo text frames
@router.websocket(EndpointPath.ECHO.value)
async def echo(websocket: WebSocket):
    await websocket.accept()
    try:
        while True:
            message = await websocket.receive_text()
            await websocket.send_text(message)
    except WebSocketDisconnect:
        logger.debug("Echo client disconnected")

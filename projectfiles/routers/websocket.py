"""WebSocket routes for upload progress"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from projectfiles.services.websocket_manager import ws_manager
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws/{client_id}")
async def websocket_endpoint(websocket: WebSocket, client_id: str):
    """
    WebSocket endpoint for chunked-upload progress

    Args:
        client_id: Identifier the client also sends as client_id with each chunk
    """
    await ws_manager.connect(websocket, client_id)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info(f"Client {client_id} disconnected")
    finally:
        ws_manager.disconnect(client_id)

"""
WebSocket handler for job state notifications.

Streams a job's snapshots as it moves through the pipeline.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from voicenotes.errors import JobNotFoundError
from voicenotes.services.pipeline import PipelineManager

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

HEARTBEAT_INTERVAL = 30.0


@router.websocket("/ws/{job_id}")
async def job_status_websocket(websocket: WebSocket, job_id: str) -> None:
    """
    WebSocket endpoint for job state changes.

    Sends the current snapshot on connect, then one message per state
    change. The connection closes after the completed or failed snapshot.

    Example client (Python):
        async with websockets.connect(f"ws://localhost:8802/ws/{job_id}") as ws:
            async for message in ws:
                data = json.loads(message)
                print(f"{data['status']} (attempts {data['attempts']})")

    Args:
        websocket: WebSocket connection
        job_id: Job identifier to subscribe to
    """
    manager: PipelineManager = websocket.app.state.manager

    try:
        queue = await manager.subscribe(job_id)
        current = await manager.get_status(job_id)
    except JobNotFoundError:
        await websocket.close(code=4004, reason=f"Job not found: {job_id}")
        return

    await websocket.accept()
    logger.info(f"WebSocket connected for job {job_id}")

    try:
        if not current.status.is_terminal:
            await websocket.send_json(current.model_dump(mode="json"))

        while True:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
                continue

            await websocket.send_json(snapshot.model_dump(mode="json"))
            if snapshot.status.is_terminal:
                break

        await websocket.close()
        logger.info(f"WebSocket closed for job {job_id}")

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for job {job_id}")
    finally:
        manager.unsubscribe(job_id, queue)

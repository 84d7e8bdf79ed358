"""Live job status over WebSocket.

  WS /ws/jobs/{job_id}?token=<jwt>

The socket subscribes before reading the row, sends that row as the first
message, then forwards each later state until the job is terminal. The
notifier only hears writes made by this process, so every keepalive interval
the row is re-read as well; changes made by other instances or an external
worker arrive at most one interval late.
"""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from creative_studio.api.deps import get_services
from creative_studio.api.v1.jobs import job_response
from creative_studio.auth.supabase_auth import websocket_user_id
from creative_studio.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


async def _send_update(websocket: WebSocket, services: Services, job) -> None:
    # signed artifact URLs may need a storage round trip
    data = await run_in_threadpool(job_response, services, job)
    await websocket.send_json({"type": "job_update", "data": data})


@router.websocket("/ws/jobs/{job_id}")
async def job_updates(
    websocket: WebSocket,
    job_id: str,
    user_id: str = Depends(websocket_user_id),
    services: Services = Depends(get_services),
):
    with services.notifier.subscribe(job_id) as sub:
        job = await run_in_threadpool(services.store.get_for_owner, job_id, user_id)
        if job is None:
            await websocket.close(code=4404, reason="Job not found")
            return

        await websocket.accept()
        try:
            sub.offer(job)
            await _send_update(websocket, services, job)
            while not sub.closed:
                update = await sub.get(timeout=KEEPALIVE_SECONDS)
                if update is None and not sub.closed:
                    latest = await run_in_threadpool(services.store.get_for_owner, job_id, user_id)
                    if latest is not None:
                        update = sub.offer(latest)
                    if update is None:
                        await websocket.send_json({"type": "ping"})
                        continue
                if update is None:
                    continue
                await _send_update(websocket, services, update)
        except WebSocketDisconnect:
            logger.debug("Client left job %s feed", job_id)
            return
    await websocket.close()

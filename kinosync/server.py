import math
from fastapi import FastAPI, Depends, HTTPException, Header, Request
from pydantic import BaseModel, Field
from typing import Optional
from .config import settings
from .models import ConnectionState, utc_now

app = FastAPI(title="Kinoview Sync")
# app.state.service is set to the running KinoSyncService at startup


class SelectBody(BaseModel):
    id: str


class ProgressBody(BaseModel):
    current_time: float = Field(alias="currentTime")


class RecommendBody(BaseModel):
    request: str


def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

def get_service(request: Request):
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service

@app.get("/healthz")
def healthz(request: Request):
    service = getattr(request.app.state, "service", None)
    if not service:
        return {"status": "starting"}

    client = service.sync_client
    last_push = client.last_push_at
    body = {
        "status": "ok" if client.state == ConnectionState.OPEN else "disconnected",
        "connection": client.state.value,
        "reconnect_pending": client.reconnect_pending,
    }
    if last_push is not None:
        body["last_push_age"] = (utc_now() - last_push).total_seconds()
    return body

@app.get("/status", dependencies=[Depends(get_token)])
def status(service=Depends(get_service)):
    client = service.sync_client
    return {
        "session_id": service.session.session_id,
        "most_recent_id": service.session.most_recent_id,
        "total_tracked_items": len(service.store),
        "connection": client.state.value,
        "connect_attempts": client.connect_attempts,
        "pushes_sent": client.pushes_sent,
        "last_push": client.last_push_at,
        "config": {
            "url": client.url,
            "push_interval": client.push_interval,
            "reconnect_delay": client.reconnect_delay
        }
    }

@app.post("/playback/select", dependencies=[Depends(get_token)])
def select_media(body: SelectBody, service=Depends(get_service)):
    service.binder.select_media(body.id)
    return {"id": body.id, "resume_at": service.binder.on_loaded()}

@app.post("/playback/progress", dependencies=[Depends(get_token)])
def report_progress(body: ProgressBody, service=Depends(get_service)):
    if not service.session.most_recent_id:
        raise HTTPException(status_code=409, detail="No media selected")
    if not math.isfinite(body.current_time) or body.current_time < 0:
        raise HTTPException(status_code=422, detail="currentTime must be a finite, non-negative number of seconds")
    service.binder.on_time_update(body.current_time)
    return {"id": service.session.most_recent_id, "played_for": body.current_time}

@app.get("/playback/resume", dependencies=[Depends(get_token)])
def resume(service=Depends(get_service)):
    return {"id": service.session.most_recent_id, "resume_at": service.binder.on_loaded()}

@app.post("/recommend", dependencies=[Depends(get_token)])
async def recommend(body: RecommendBody, service=Depends(get_service)):
    if not body.request.strip():
        raise HTTPException(status_code=400, detail="empty request")
    item = await service.gallery.request_recommendation(body.request, service.store)
    if item is None:
        return {"recommendation": None}
    service.binder.select_media(item.ID)
    return {"recommendation": item.model_dump()}

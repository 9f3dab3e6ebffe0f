from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..state import get_state, State
from ..models.events import EventItem, EventsResponse

router = APIRouter(tags=["events"])


@router.get("/events", response_model=EventsResponse)
def v1_events(since_id: int = Query(0, ge=0), state: State = Depends(get_state)) -> EventsResponse:
    items = [EventItem(**it) for it in state.event_log.since(since_id)]
    next_since = items[-1].id if items else since_id
    return EventsResponse(ok=True, items=items, next_since_id=next_since)

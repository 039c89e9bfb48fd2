"""FastAPI server exposing omok rooms over HTTP and a live WebSocket feed."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from framework.config import EngineSettings, load_dotenv
from framework.errors import IllegalMoveError, NotAllowedError, SessionNotFoundError, StoreError
from framework.serialize import json_dumps
from omok.omok_moves import move_from_dict
from omok.omok_state import DEFAULT_DISPLAY_NAME, PlayerProfile
from server.schemas import CreateRoomRequest, JoinRoomRequest, RestartRequest, SubmitMoveRequest
from server.session import RoomService, RoomSession

logger = logging.getLogger(__name__)

load_dotenv()
settings = EngineSettings.from_env()
service = RoomService(settings=settings)

app = FastAPI(title="Omok Rooms API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _conflict(room_id: str, player_id: str, exc: IllegalMoveError) -> HTTPException:
    """Build a 409 carrying the refreshed view, or a 404 if the room is gone."""
    try:
        payload = service.view(room_id, player_id)
    except SessionNotFoundError as missing:
        return HTTPException(status_code=404, detail=missing.to_dict())
    payload["error"] = exc.to_dict()
    return HTTPException(status_code=409, detail=payload)


@app.get("/api/health")
def health() -> dict[str, str]:
    """Healthcheck endpoint."""
    return {"status": "ok"}


@app.post("/api/rooms")
def create_room(request: CreateRoomRequest) -> dict:
    """Open a waiting room for the requesting host."""
    try:
        room = service.create_room(request.host.to_profile())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return service.view(room, room.host.uid)


@app.get("/api/rooms")
def list_rooms(exclude: str | None = Query(default=None)) -> list[dict[str, Any]]:
    """List rooms still waiting for a guest, newest first."""
    return [room.to_dict() for room in service.list_waiting_rooms(excluding=exclude)]


@app.get("/api/rooms/{room_id}")
def get_room(room_id: str, player_id: str = Query(...)) -> dict:
    """Get the room as seen by one player."""
    try:
        return service.view(room_id, player_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc


@app.post("/api/rooms/{room_id}/join")
def join_room(room_id: str, request: JoinRoomRequest) -> dict:
    """Take the guest seat; a lost race leaves the caller as spectator."""
    try:
        joined = service.join_room(room_id, request.player.to_profile())
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    payload = service.view(joined.room, request.player.uid)
    payload["joined"] = joined.joined
    payload["role"] = joined.role
    return payload


@app.post("/api/rooms/{room_id}/move")
def submit_move(room_id: str, request: SubmitMoveRequest) -> dict:
    """Place a stone for the player holding the turn."""
    try:
        # Coordinates resolve against the stored board, not the client's idea of it.
        board_size = service.get_room(room_id).board.size
        move = move_from_dict(request.move, board_size=board_size)
        room = service.submit_move(room_id, request.player_id, move)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    except IllegalMoveError as exc:
        raise _conflict(room_id, request.player_id, exc) from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return service.view(room, request.player_id, last_move=getattr(move, "index", None))


@app.post("/api/rooms/{room_id}/restart")
def restart_room(room_id: str, request: RestartRequest) -> dict:
    """Clear the board of a finished room for another round."""
    try:
        room = service.restart(room_id, request.player_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    except NotAllowedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except IllegalMoveError as exc:
        raise _conflict(room_id, request.player_id, exc) from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return service.view(room, request.player_id)


@app.delete("/api/rooms/{room_id}")
def delete_room(room_id: str, player_id: str = Query(...)) -> dict[str, Any]:
    """Delete a room; only its host may."""
    try:
        service.delete_room(room_id, player_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    except NotAllowedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"room_id": room_id.upper(), "deleted": True}


@app.get("/api/rooms/{room_id}/events", response_model=None)
def get_events(room_id: str, format: str = Query(default="array")) -> Any:
    """Return room event history as array (default) or JSONL text."""
    try:
        events = service.events(room_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc

    if format == "jsonl":
        text = "\n".join(json_dumps(event) for event in events)
        return PlainTextResponse(content=text, media_type="application/jsonl")
    return events


@app.get("/api/stats")
def get_stats(limit: int | None = Query(default=None, ge=1)) -> dict[str, Any]:
    """Return the leaderboard and every head-to-head record."""
    report = service.ledger.report()
    if limit is not None:
        report["players"] = report["players"][:limit]
    return report


@app.get("/api/stats/{uid}")
def get_player_stats(uid: str) -> dict[str, Any]:
    """Return one player's record; unknown players have all zeros."""
    return service.player_stats(uid).to_dict()


@app.get("/api/matchups/{uid_a}/{uid_b}")
def get_matchup(uid_a: str, uid_b: str) -> dict[str, Any]:
    """Return the head-to-head record of two players."""
    return service.matchup(uid_a, uid_b).to_dict()


@app.websocket("/ws/rooms/{room_id}")
async def room_feed(
    websocket: WebSocket,
    room_id: str,
    player_id: str = Query(...),
    display_name: str | None = Query(default=None),
) -> None:
    """Stream the player's view on every room change until the room is deleted."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    def push(payload: dict[str, Any] | None) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    player = PlayerProfile(uid=player_id, display_name=display_name or DEFAULT_DISPLAY_NAME)
    try:
        # Attaching takes the store lock and may run a join transaction.
        session = await run_in_threadpool(
            RoomSession.attach,
            service,
            room_id,
            player,
            on_change=lambda current: push(current.view()),
            on_ended=lambda _: push(None),
        )
    except SessionNotFoundError:
        await websocket.send_json({"type": "room_ended", "room_id": room_id.upper()})
        await websocket.close()
        return

    # Reading the socket is what notices a client that went away.
    disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
    try:
        while True:
            next_payload = asyncio.ensure_future(queue.get())
            await asyncio.wait({next_payload, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected.done():
                next_payload.cancel()
                logger.debug("websocket for %s in room %s disconnected", player_id, session.room_id)
                break
            payload = next_payload.result()
            if payload is None:
                await websocket.send_json({"type": "room_ended", "room_id": session.room_id})
                await websocket.close()
                break
            await websocket.send_json({"type": "room", **payload})
    except WebSocketDisconnect:
        logger.debug("websocket for %s in room %s disconnected", player_id, session.room_id)
    finally:
        disconnected.cancel()
        session.close()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Drain client frames until the client disconnects; the feed is one-way."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("server.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()

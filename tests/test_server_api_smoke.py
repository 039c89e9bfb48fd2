"""Smoke tests for the room API and its WebSocket feed."""

from __future__ import annotations

import json
import random
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from framework.config import EngineSettings
from framework.errors import IllegalMoveError
from framework.store import InMemoryDocumentStore
import server.main as main_module
from server.main import (
    create_room,
    delete_room,
    get_events,
    get_matchup,
    get_player_stats,
    get_room,
    get_stats,
    health,
    join_room,
    list_rooms,
    restart_room,
    submit_move,
)
from server.rooms import room_path
from server.schemas import CreateRoomRequest, JoinRoomRequest, RestartRequest, SubmitMoveRequest
from server.session import RoomService

HOST_WIN = [("host", 0), ("guest", 10), ("host", 1), ("guest", 11), ("host", 2), ("guest", 12), ("host", 3), ("guest", 13), ("host", 4)]


@pytest.fixture
def service(monkeypatch) -> RoomService:
    fresh = RoomService(InMemoryDocumentStore(), settings=EngineSettings(), rng=random.Random(9))
    monkeypatch.setattr(main_module, "service", fresh)
    return fresh


def _create(uid: str = "host", display_name: str = "Hana") -> dict:
    return create_room(CreateRoomRequest.model_validate({"host": {"uid": uid, "display_name": display_name}}))


def _join(room_id: str, uid: str = "guest") -> dict:
    return join_room(room_id, JoinRoomRequest.model_validate({"player": {"uid": uid}}))


def _submit(room_id: str, player_id: str, index: int) -> dict:
    return submit_move(
        room_id,
        SubmitMoveRequest.model_validate({"player_id": player_id, "move": {"type": "PlaceStone", "index": index}}),
    )


def _expect_http_error(fn, expected_status: int) -> Any:
    try:
        fn()
    except HTTPException as exc:
        assert exc.status_code == expected_status
        return exc.detail
    raise AssertionError("Expected HTTPException to be raised.")


def test_health() -> None:
    assert health() == {"status": "ok"}


def test_room_flow_host_wins_and_stats_update(service: RoomService) -> None:
    created = _create()
    room_id = created["room_id"]
    assert created["observation"]["status"] == "waiting"
    assert created["observation"]["role"] == "host"

    joined = _join(room_id.lower())
    assert joined["joined"] is True
    assert joined["role"] == "guest"
    assert joined["observation"]["status"] == "playing"

    payload: dict = {}
    for player_id, index in HOST_WIN:
        payload = _submit(room_id, player_id, index)

    assert payload["observation"]["status"] == "finished"
    assert payload["observation"]["result"] == "win"
    assert payload["observation"]["last_move"] == 4
    assert payload["result"]["winner"] == "host"
    assert payload["result"]["winning_line"] == [0, 1, 2, 3, 4]

    guest_view = get_room(room_id, player_id="guest")
    assert guest_view["observation"]["result"] == "loss"

    assert get_player_stats("host")["wins"] == 1
    assert get_player_stats("guest")["losses"] == 1
    assert get_player_stats("guest")["win_rate"] == 0
    assert get_matchup("guest", "host")["wins"] == {"guest": 0, "host": 1}
    assert [player["uid"] for player in get_stats(limit=None)["players"]] == ["host", "guest"]
    assert len(get_stats(limit=1)["players"]) == 1

    events = get_events(room_id=room_id, format="array")
    assert events[0]["event_type"] == "room_created"
    assert events[-1]["event_type"] == "stats_recorded"
    jsonl = get_events(room_id=room_id, format="jsonl")
    lines = jsonl.body.decode("utf-8").splitlines()
    assert len(lines) == len(events)
    assert json.loads(lines[-1])["event_type"] == "stats_recorded"


def test_full_board_draw_over_the_api(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id)
    x_cells = [index for index in range(100) if ((index % 10) // 2 + index // 10) % 2 == 0]
    o_cells = [index for index in range(100) if index not in set(x_cells)]

    payload: dict = {}
    for x_index, o_index in zip(x_cells, o_cells):
        _submit(room_id, "host", x_index)
        payload = _submit(room_id, "guest", o_index)

    assert payload["observation"]["status"] == "finished"
    assert payload["observation"]["winner"] == "draw"
    assert payload["observation"]["result"] == "draw"
    assert get_player_stats("host")["draws"] == 1
    assert get_player_stats("guest")["draws"] == 1
    assert get_matchup("host", "guest")["draws"] == 1


def test_rejected_moves_return_conflict_with_refreshed_view(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id)
    _submit(room_id, "host", 0)

    detail = _expect_http_error(lambda: _submit(room_id, "host", 1), 409)
    assert detail["observation"]["current_turn"] == "guest"
    assert detail["error"]["type"] == "IllegalMoveError"

    detail = _expect_http_error(lambda: _submit(room_id, "guest", 0), 409)
    assert detail["error"]["type"] == "InvalidMoveError"
    assert detail["observation"]["turn_index"] == 1

    _expect_http_error(lambda: _submit(room_id, "guest", 100), 409)
    _expect_http_error(lambda: _submit("ZZZZ", "guest", 1), 404)
    _expect_http_error(
        lambda: submit_move(room_id, SubmitMoveRequest.model_validate({"player_id": "guest", "move": {"type": "Pass"}})),
        400,
    )


def test_join_race_loser_becomes_spectator(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id, "guest")

    late = _join(room_id, "late")

    assert late["joined"] is False
    assert late["role"] == "spectator"
    assert late["legal_moves"] == []
    _expect_http_error(lambda: _join("NOPE"), 404)


def test_restart_and_delete_permissions(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id)

    _expect_http_error(lambda: restart_room(room_id, RestartRequest(player_id="host")), 409)
    for player_id, index in HOST_WIN:
        _submit(room_id, player_id, index)
    _expect_http_error(lambda: restart_room(room_id, RestartRequest(player_id="stranger")), 403)

    restarted = restart_room(room_id, RestartRequest(player_id="guest"))
    assert restarted["observation"]["status"] == "playing"
    assert restarted["observation"]["round"] == 2
    assert restarted["observation"]["turn_index"] == 0

    _expect_http_error(lambda: delete_room(room_id, player_id="guest"), 403)
    assert delete_room(room_id, player_id="host") == {"room_id": room_id, "deleted": True}
    _expect_http_error(lambda: get_room(room_id, player_id="host"), 404)
    _expect_http_error(lambda: delete_room(room_id, player_id="host"), 404)


def test_waiting_room_listing_excludes_callers_rooms(service: RoomService) -> None:
    mine = _create("host")["room_id"]
    theirs = _create("other", "Oda")["room_id"]
    started = _create("third")["room_id"]
    _join(started, "guest")

    listed = {room["id"] for room in list_rooms(exclude=None)}
    assert listed == {mine, theirs}
    assert [room["id"] for room in list_rooms(exclude="host")] == [theirs]


def test_request_validation_returns_422(service: RoomService) -> None:
    client = TestClient(main_module.app)

    assert client.post("/api/rooms", json={"host": {"uid": ""}}).status_code == 422
    room_id = client.post("/api/rooms", json={"host": {"uid": "host"}}).json()["room_id"]
    assert client.post(f"/api/rooms/{room_id}/move", json={"player_id": "host"}).status_code == 422
    assert client.get(f"/api/rooms/{room_id}").status_code == 422
    assert client.post("/api/rooms", json={"host": {"uid": "draw"}}).status_code == 400


def test_websocket_streams_room_changes_until_deletion(service: RoomService) -> None:
    client = TestClient(main_module.app)
    room_id = _create()["room_id"]

    with client.websocket_connect(f"/ws/rooms/{room_id}?player_id=guest&display_name=Gil") as websocket:
        message = websocket.receive_json()
        while message["observation"]["status"] != "playing":
            message = websocket.receive_json()
        assert message["type"] == "room"
        assert message["observation"]["role"] == "guest"
        assert message["observation"]["guest"]["display_name"] == "Gil"

        _submit(room_id, "host", 0)
        moved = websocket.receive_json()
        assert moved["observation"]["last_move"] == 0
        assert moved["observation"]["is_my_turn"] is True

        delete_room(room_id, player_id="host")
        ended = websocket.receive_json()
        assert ended == {"type": "room_ended", "room_id": room_id}


def test_websocket_for_missing_room_reports_ended(service: RoomService) -> None:
    client = TestClient(main_module.app)

    with client.websocket_connect("/ws/rooms/GONE?player_id=guest") as websocket:
        assert websocket.receive_json() == {"type": "room_ended", "room_id": "GONE"}


def test_coordinate_moves_resolve_against_the_room_board(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id)

    def place(move: dict) -> dict:
        return submit_move(room_id, SubmitMoveRequest.model_validate({"player_id": "host", "move": move}))

    detail = _expect_http_error(lambda: place({"type": "PlaceStone", "row": 0, "col": 12, "board_size": 10}), 409)
    assert detail["error"]["type"] == "InvalidMoveError"
    assert detail["observation"]["turn_index"] == 0
    _expect_http_error(lambda: place({"type": "PlaceStone", "row": 0, "col": 2, "board_size": 12}), 400)

    payload = place({"type": "PlaceStone", "row": 1, "col": 2})
    assert payload["observation"]["last_move"] == 12
    assert payload["room"]["board"][12] == "X"


def test_conflict_for_a_room_deleted_meanwhile_is_not_found(service: RoomService) -> None:
    room_id = _create()["room_id"]
    _join(room_id)
    delete_room(room_id, player_id="host")

    error = main_module._conflict(room_id, "guest", IllegalMoveError("guest", reason="It is not guest's turn."))

    assert error.status_code == 404
    assert error.detail["type"] == "SessionNotFoundError"


def test_websocket_disconnect_releases_the_subscription(service: RoomService) -> None:
    client = TestClient(main_module.app)
    room_id = _create()["room_id"]
    _join(room_id)

    with client.websocket_connect(f"/ws/rooms/{room_id}?player_id=guest") as websocket:
        assert websocket.receive_json()["type"] == "room"
        assert service.store.subscriber_count(room_path(room_id)) == 1

    assert service.store.subscriber_count(room_path(room_id)) == 0

"""
Tests for game endpoints, the public teaser, and operational endpoints.
"""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from opengym.core.clock import as_utc
from opengym.services import game_service


def parse_ts(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


@pytest.mark.asyncio
async def test_create_game(client: AsyncClient, organizer, auth_headers_for):
    """New games get a short id, default capacity and all spots free."""
    response = await client.post(
        "/api/v1/games",
        json={"name": "Thursday Futsal", "location": "Gym B"},
        headers=auth_headers_for(organizer),
    )
    assert response.status_code == 201
    data = response.json()
    assert len(data["id"]) == 4
    assert data["id"].isalnum()
    assert data["organizer_id"] == organizer.id
    assert data["organizer"]["name"] == "Olga"
    assert data["max_players"] == 100
    assert data["spots_left"] == 100
    assert data["max_guests_per_player"] == 0
    assert data["duration_minutes"] == 60
    assert data["published_at"] is None


@pytest.mark.asyncio
async def test_create_unlimited_game(client: AsyncClient, organizer, auth_headers_for):
    response = await client.post(
        "/api/v1/games",
        json={"name": "Open run", "max_players": None, "max_guests_per_player": None},
        headers=auth_headers_for(organizer),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["max_players"] is None
    assert data["spots_left"] is None
    assert data["max_guests_per_player"] is None


@pytest.mark.asyncio
async def test_create_game_unauthenticated(client: AsyncClient):
    response = await client.post("/api/v1/games", json={"name": "Nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_game_validation(client: AsyncClient, organizer, auth_headers_for):
    headers = auth_headers_for(organizer)
    assert (await client.post("/api/v1/games", json={"name": ""}, headers=headers)).status_code == 422
    assert (await client.post("/api/v1/games", json={"name": "x", "max_players": -1}, headers=headers)).status_code == 422
    assert (await client.post("/api/v1/games", json={"name": "x", "duration_minutes": 0}, headers=headers)).status_code == 422


@pytest.mark.asyncio
async def test_publish_in_the_past_means_now(client: AsyncClient, organizer, auth_headers_for, clock):
    response = await client.post(
        "/api/v1/games",
        json={"name": "Late", "published_at": (clock.now() - timedelta(days=1)).isoformat()},
        headers=auth_headers_for(organizer),
    )
    assert parse_ts(response.json()["published_at"]) == clock.now()


@pytest.mark.asyncio
async def test_game_id_collision_retries(client: AsyncClient, organizer, auth_headers_for, make_game, monkeypatch):
    await make_game(game_id="AAAA")
    ids = iter(["AAAA", "BBBB"])
    monkeypatch.setattr(game_service, "generate_game_id", lambda: next(ids))

    response = await client.post("/api/v1/games", json={"name": "Second"}, headers=auth_headers_for(organizer))
    assert response.status_code == 201
    assert response.json()["id"] == "BBBB"


@pytest.mark.asyncio
async def test_game_id_collision_exhausted(client: AsyncClient, organizer, auth_headers_for, make_game, monkeypatch):
    await make_game(game_id="AAAA")
    monkeypatch.setattr(game_service, "generate_game_id", lambda: "AAAA")

    response = await client.post("/api/v1/games", json={"name": "Second"}, headers=auth_headers_for(organizer))
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_get_game_visibility(client: AsyncClient, make_game, organizer, players, auth_headers_for):
    await make_game(published=False)
    assert (await client.get("/api/v1/games/G4me")).status_code == 404
    assert (await client.get("/api/v1/games/G4me", headers=auth_headers_for(players[0]))).status_code == 404

    response = await client.get("/api/v1/games/G4me", headers=auth_headers_for(organizer))
    assert response.status_code == 200
    assert response.json()["name"] == "Sunday Volleyball"


@pytest.mark.asyncio
async def test_get_published_game_anonymously(client: AsyncClient, make_game):
    await make_game()
    response = await client.get("/api/v1/games/G4me")
    assert response.status_code == 200
    assert response.json()["spots_left"] == 2


@pytest.mark.asyncio
async def test_only_organizer_can_edit(client: AsyncClient, make_game, players, auth_headers_for):
    await make_game()
    response = await client.patch(
        "/api/v1/games/G4me", json={"name": "Hijacked"}, headers=auth_headers_for(players[0])
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_hidden_game_edit_is_not_found(client: AsyncClient, make_game, players, auth_headers_for):
    await make_game(published=False)
    response = await client.patch(
        "/api/v1/games/G4me", json={"name": "Hijacked"}, headers=auth_headers_for(players[0])
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_edit_metadata(client: AsyncClient, make_game, organizer, auth_headers_for):
    await make_game()
    response = await client.patch(
        "/api/v1/games/G4me",
        json={"name": "Monday Volleyball", "description": "Bring water", "total_price_cents": 500},
        headers=auth_headers_for(organizer),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Monday Volleyball"
    assert data["description"] == "Bring water"
    assert data["total_price_cents"] == 500
    assert data["location"] == "Beach court 3"


@pytest.mark.asyncio
async def test_required_fields_cannot_be_cleared(client: AsyncClient, make_game, organizer, auth_headers_for):
    await make_game()
    response = await client.patch("/api/v1/games/G4me", json={"name": None}, headers=auth_headers_for(organizer))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_published_game_cannot_be_unpublished(client: AsyncClient, make_game, organizer, auth_headers_for, clock):
    await make_game()
    headers = auth_headers_for(organizer)

    response = await client.patch("/api/v1/games/G4me", json={"published_at": None}, headers=headers)
    assert response.status_code == 400

    later = (clock.now() + timedelta(days=1)).isoformat()
    response = await client.patch("/api/v1/games/G4me", json={"published_at": later}, headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_schedule_and_publish(client: AsyncClient, make_game, organizer, players, auth_headers_for, clock):
    await make_game(published=False)
    headers = auth_headers_for(organizer)

    when = clock.now() + timedelta(hours=2)
    response = await client.patch("/api/v1/games/G4me", json={"published_at": when.isoformat()}, headers=headers)
    assert response.status_code == 200
    assert parse_ts(response.json()["published_at"]) == when

    # Still scheduled: can be moved or cancelled
    response = await client.patch("/api/v1/games/G4me", json={"published_at": None}, headers=headers)
    assert response.status_code == 200
    assert response.json()["published_at"] is None

    response = await client.patch(
        "/api/v1/games/G4me",
        json={"published_at": (clock.now() - timedelta(minutes=5)).isoformat()},
        headers=headers,
    )
    assert parse_ts(response.json()["published_at"]) == clock.now()
    assert (await client.get("/api/v1/games/G4me", headers=auth_headers_for(players[0]))).status_code == 200


@pytest.mark.asyncio
async def test_capacity_change_recomputes_spots(
    client: AsyncClient, make_game, organizer, players, participate, roster, stored_spots_left, auth_headers_for
):
    alice, bob, carol, _ = players
    await make_game(max_players=1)
    await participate(alice, "G4me")
    await participate(bob, "G4me")
    await participate(carol, "G4me")
    headers = auth_headers_for(organizer)

    response = await client.patch("/api/v1/games/G4me", json={"max_players": 3}, headers=headers)
    assert response.status_code == 200
    assert response.json()["spots_left"] == 0
    assert set((await roster(alice, "G4me")).values()) == {"confirmed"}

    response = await client.patch("/api/v1/games/G4me", json={"max_players": 2}, headers=headers)
    assert response.json()["spots_left"] == 0
    assert await roster(alice, "G4me") == {"Alice": "confirmed", "Bob": "confirmed", "Carol": "waitlisted"}

    response = await client.patch("/api/v1/games/G4me", json={"max_players": None}, headers=headers)
    assert response.json()["spots_left"] is None
    assert await stored_spots_left("G4me") is None

    response = await client.patch("/api/v1/games/G4me", json={"max_players": 5}, headers=headers)
    assert response.json()["spots_left"] == 2


@pytest.mark.asyncio
async def test_capacity_cannot_drop_below_organizer_party(
    client: AsyncClient, make_game, organizer, participate, auth_headers_for
):
    await make_game(max_players=4, max_guests_per_player=2)
    await participate(organizer, "G4me", guests=2)

    response = await client.patch(
        "/api/v1/games/G4me", json={"max_players": 2}, headers=auth_headers_for(organizer)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_public_teaser_published(client: AsyncClient, make_game, clock):
    await make_game()
    response = await client.get("/api/v1/public/games/G4me")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Sunday Volleyball"
    assert data["organizer"]["name"] == "Olga"
    assert data["spots_left"] == 2
    assert parse_ts(data["starts_at"]) == clock.now() + timedelta(days=2)
    assert data["published_at"] is None
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_public_teaser_scheduled(client: AsyncClient, make_game, clock):
    when = clock.now() + timedelta(hours=3)
    await make_game(published_at=when)
    data = (await client.get("/api/v1/public/games/G4me")).json()
    assert data["spots_left"] is None
    assert data["starts_at"] is None
    assert parse_ts(data["published_at"]) == when


@pytest.mark.asyncio
async def test_public_teaser_unpublished_and_missing(client: AsyncClient, make_game):
    await make_game(published=False)
    data = (await client.get("/api/v1/public/games/G4me")).json()
    assert data["name"] == "Sunday Volleyball"
    assert data["spots_left"] is None
    assert data["published_at"] is None

    assert (await client.get("/api/v1/public/games/none")).status_code == 404


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_root_and_metrics(client: AsyncClient, make_game, players, participate):
    response = await client.get("/")
    assert response.status_code == 200
    assert "OpenGym" in response.json()["message"]

    await make_game()
    await participate(players[0], "G4me")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "participation_updates_total" in response.text


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_edit_invalidates_cache_after_commit(
    client: AsyncClient, make_game, organizer, auth_headers_for, stored_spots_left, monkeypatch
):
    from opengym.api.routes import games as game_routes

    await make_game(max_players=2)
    seen = []

    async def invalidate(game_id):
        seen.append(await stored_spots_left(game_id))

    monkeypatch.setattr(game_routes, "invalidate_public_game", invalidate)
    response = await client.patch("/api/v1/games/G4me", json={"max_players": 5}, headers=auth_headers_for(organizer))
    assert response.status_code == 200
    assert seen == [5]


@pytest.mark.asyncio
async def test_list_my_games(client: AsyncClient, make_game, organizer, players, participate, auth_headers_for):
    alice, bob, _, _ = players
    await make_game(game_id="AAAA")
    await make_game(game_id="BBBB")
    await make_game(game_id="CCCC")
    await participate(alice, "BBBB")
    await participate(alice, "CCCC", status="not_going")

    data = (await client.get("/api/v1/games", headers=auth_headers_for(alice))).json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert data["page_size"] == 10
    assert {item["id"] for item in data["items"]} == {"BBBB", "CCCC"}
    assert all(item["is_organizer"] is False for item in data["items"])
    assert data["items"][0]["organizer"]["name"] == "Olga"

    data = (await client.get("/api/v1/games", headers=auth_headers_for(organizer))).json()
    assert data["total"] == 3
    assert all(item["is_organizer"] for item in data["items"])

    data = (await client.get("/api/v1/games", headers=auth_headers_for(bob))).json()
    assert data == {"items": [], "total": 0, "page": 1, "page_size": 10}


@pytest.mark.asyncio
async def test_list_games_paging(client: AsyncClient, make_game, organizer, auth_headers_for):
    for game_id in ("AAAA", "BBBB", "CCCC"):
        await make_game(game_id=game_id)
    headers = auth_headers_for(organizer)

    first = (await client.get("/api/v1/games", params={"page": 1, "pageSize": 2}, headers=headers)).json()
    second = (await client.get("/api/v1/games", params={"page": 2, "pageSize": 2}, headers=headers)).json()
    assert first["total"] == second["total"] == 3
    assert len(first["items"]) == 2
    assert len(second["items"]) == 1
    ids = [item["id"] for item in first["items"] + second["items"]]
    assert sorted(ids) == ["AAAA", "BBBB", "CCCC"]

    clamped = (await client.get("/api/v1/games", params={"page": 0, "pageSize": 100}, headers=headers)).json()
    assert clamped["page"] == 1
    assert clamped["page_size"] == 25
    assert len(clamped["items"]) == 3

    clamped = (await client.get("/api/v1/games", params={"pageSize": 0}, headers=headers)).json()
    assert clamped["page_size"] == 1
    assert len(clamped["items"]) == 1


@pytest.mark.asyncio
async def test_list_games_unauthenticated(client: AsyncClient):
    assert (await client.get("/api/v1/games")).status_code == 401


@pytest.mark.asyncio
async def test_request_context_carries_game_id(client: AsyncClient, make_game, monkeypatch):
    import structlog
    from opengym.api import middleware

    await make_game()
    seen = []

    class RecordingLogger:
        def info(self, event, **kw):
            seen.append((event, structlog.contextvars.get_contextvars()))

        error = info

    monkeypatch.setattr(middleware, "logger", RecordingLogger())
    await client.get("/api/v1/games/G4me/participants")
    await client.get("/health")

    assert seen[0][0] == "request_completed"
    assert seen[0][1]["game_id"] == "G4me"
    assert "game_id" not in seen[1][1]


def test_service_context_processor():
    from opengym.core.config import get_settings
    from opengym.core.logging import add_service_context

    settings = get_settings()
    event = add_service_context(settings)(None, "info", {"event": "game_created"})
    assert event["service"] == settings.APP_NAME
    assert event["environment"] == settings.ENVIRONMENT


@pytest.mark.asyncio
async def test_created_game_without_guest_limit_accepts_any_party(
    client: AsyncClient, organizer, players, participate, auth_headers_for, clock
):
    response = await client.post(
        "/api/v1/games",
        json={"name": "Open run", "max_players": 10, "max_guests_per_player": None, "published_at": clock.now().isoformat()},
        headers=auth_headers_for(organizer),
    )
    game_id = response.json()["id"]

    response = await participate(players[0], game_id, guests=3)
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    fetched = await client.get(f"/api/v1/games/{game_id}", headers=auth_headers_for(organizer))
    assert fetched.json()["max_guests_per_player"] is None
    assert fetched.json()["spots_left"] == 6


def test_game_rows_do_not_load_participants():
    from opengym.models.game import Game
    from opengym.models.participant import GameParticipant

    assert set(Game.__mapper__.relationships.keys()) == {"organizer"}
    assert set(GameParticipant.__mapper__.relationships.keys()) == {"user"}

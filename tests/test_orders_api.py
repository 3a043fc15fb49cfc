"""API tests for order submission, cancellation and execution."""
import pytest

from test_rooms_api import _create_room, _join


async def _started_room(client, names=("Alice", "Bob"), **overrides):
    """Create a room, join players, start it; return (room_id, host, players, stocks)."""
    room, host = await _create_room(client, **overrides)
    players = [await _join(client, room["code"], name) for name in names]
    resp = await client.post(f"/api/rooms/{room['id']}/advance", headers=host)
    assert resp.status_code == 200, resp.text
    stocks = (await client.get(f"/api/rooms/{room['id']}")).json()["stocks"]
    return room["id"], host, players, stocks


# ── Submission rules ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_orders_rejected_before_start(client):
    room, _ = await _create_room(client)
    _, alice = await _join(client, room["code"], "Alice")
    resp = await client.post(f"/api/rooms/{room['id']}/orders", json={"type": "skip"}, headers=alice)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_buy_order(client):
    room_id, _, [(alice, alice_h), _], stocks = await _started_room(client)
    resp = await client.post(
        f"/api/rooms/{room_id}/orders",
        json={"type": "buy", "stock_id": stocks[0]["id"], "budget": 200},
        headers=alice_h,
    )
    assert resp.status_code == 200, resp.text
    order = resp.json()
    assert order["player_id"] == alice["id"]
    assert order["type"] == "buy"
    assert order["status"] == "pending"
    assert order["round"] == 1
    assert order["requested_price_total"] == 200
    assert order["execution_quantity"] is None


@pytest.mark.asyncio
async def test_buy_by_quantity_spends_current_price(client):
    room_id, _, [(_, alice_h), (_, bob_h)], stocks = await _started_room(client)
    url = f"/api/rooms/{room_id}/orders"
    stock = stocks[0]

    resp = await client.post(
        url, json={"type": "buy", "stock_id": stock["id"], "quantity": 1}, headers=alice_h
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["requested_quantity"] == 1
    assert resp.json()["requested_price_total"] == stock["current_price"]

    # Never more than the player's cash.
    resp = await client.post(
        url, json={"type": "buy", "stock_id": stock["id"], "quantity": 1000}, headers=bob_h
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["requested_quantity"] == 1000
    assert resp.json()["requested_price_total"] == 500


@pytest.mark.asyncio
async def test_invalid_orders(client):
    room_id, _, [(_, alice_h), _], stocks = await _started_room(client)
    url = f"/api/rooms/{room_id}/orders"
    stock_id = stocks[0]["id"]

    cases = [
        ({"type": "hold"}, 400),
        ({"type": "buy", "stock_id": stock_id}, 400),
        ({"type": "buy", "stock_id": stock_id, "budget": 0}, 400),
        ({"type": "buy", "stock_id": stock_id, "quantity": 0}, 400),
        ({"type": "buy", "stock_id": stock_id, "budget": 10_000}, 400),
        ({"type": "sell", "stock_id": stock_id}, 400),
        ({"type": "buy", "budget": 10}, 400),
        ({"type": "buy", "stock_id": 999999, "budget": 10}, 404),
    ]
    for body, status in cases:
        resp = await client.post(url, json=body, headers=alice_h)
        assert resp.status_code == status, (body, resp.text)

    orders = (await client.get(url)).json()
    assert orders == []


@pytest.mark.asyncio
async def test_one_order_per_round(client):
    room_id, _, [(_, alice_h), _], _ = await _started_room(client)
    url = f"/api/rooms/{room_id}/orders"

    first = await client.post(url, json={"type": "skip"}, headers=alice_h)
    assert first.status_code == 200
    second = await client.post(url, json={"type": "skip"}, headers=alice_h)
    assert second.status_code == 409

    # Cancelling frees the slot.
    resp = await client.delete(f"{url}/{first.json()['id']}", headers=alice_h)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    third = await client.post(url, json={"type": "skip"}, headers=alice_h)
    assert third.status_code == 200

    live = [o for o in (await client.get(url)).json() if o["status"] != "cancelled"]
    assert len(live) == 1


@pytest.mark.asyncio
async def test_cancel_rules(client):
    room_id, host, [(_, alice_h), (_, bob_h)], _ = await _started_room(client)
    url = f"/api/rooms/{room_id}/orders"
    order = (await client.post(url, json={"type": "skip"}, headers=alice_h)).json()

    # Someone else's order.
    resp = await client.delete(f"{url}/{order['id']}", headers=bob_h)
    assert resp.status_code == 404

    await client.post(url, json={"type": "skip"}, headers=bob_h)
    await client.post(f"/api/rooms/{room_id}/advance", headers=host)

    # Submission closed.
    resp = await client.delete(f"{url}/{order['id']}", headers=alice_h)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_player_token_is_bound_to_room(client):
    room_id, _, _, _ = await _started_room(client)
    _, _, [(_, stranger_h)], _ = await _started_room(client, names=("Stranger",))

    resp = await client.post(f"/api/rooms/{room_id}/orders", json={"type": "skip"}, headers=stranger_h)
    assert resp.status_code == 403


# ── Execution through the API ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_round_executes_orders(client):
    room_id, host, [(alice, alice_h), (bob, bob_h)], stocks = await _started_room(
        client, initial_cash=1000
    )
    cheapest = min(stocks, key=lambda s: s["current_price"])
    url = f"/api/rooms/{room_id}/orders"
    await client.post(
        url, json={"type": "buy", "stock_id": cheapest["id"], "budget": 1000}, headers=alice_h
    )
    await client.post(url, json={"type": "skip"}, headers=bob_h)

    for _ in range(3):
        resp = await client.post(f"/api/rooms/{room_id}/advance", headers=host)
        assert resp.status_code == 200, resp.text
    assert resp.json()["phase"] == "paying_dividends"

    orders = {o["player_id"]: o for o in (await client.get(url, params={"round": 1})).json()}
    buy = orders[alice["id"]]
    assert buy["status"] == "executed"
    assert buy["execution_quantity"] >= 1
    assert buy["execution_price_total"] == buy["execution_quantity"] * buy["stock_price_before"]
    assert buy["stock_price_after"] > buy["stock_price_before"]
    assert orders[bob["id"]]["status"] == "executed"

    info = (await client.get(f"/api/rooms/{room_id}/players/{alice['id']}")).json()
    assert info["cash"] == 1000 - buy["execution_price_total"]
    assert info["holdings"][0]["stock_id"] == cheapest["id"]
    assert info["holdings"][0]["quantity"] == buy["execution_quantity"]
    # Round-start snapshot taken when submission closed.
    assert info["previous_cash"] == 1000

    board = (await client.get(f"/api/rooms/{room_id}/leaderboard")).json()
    assert {e["player_id"] for e in board} == {alice["id"], bob["id"]}
    assert board == sorted(board, key=lambda e: (-e["net_worth"], e["name"]))

import asyncio
import json
from datetime import datetime, timedelta, timezone

from pedidos_express.services.order_feed import feed_window, format_event, load_feed_orders, order_feed_events
from tests.fixtures_data import TENANT_B_API_KEY, create_order, create_tenant

NOW = datetime(2025, 6, 10, 15, 0, tzinfo=timezone.utc)


class FakeRequest:
    def __init__(self, connected_polls=1):
        self.connected_polls = connected_polls

    async def is_disconnected(self):
        if self.connected_polls <= 0:
            return True
        self.connected_polls -= 1
        return False


def _collect(generator):
    async def _run():
        return [frame async for frame in generator]

    return asyncio.run(_run())


def _parse(frame):
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_feed_window_uses_sao_paulo_calendar():
    window = feed_window(NOW, "America/Sao_Paulo")

    assert window.today_start == datetime(2025, 6, 10, 3, 0, tzinfo=timezone.utc)
    assert window.range_end == datetime(2025, 6, 12, 3, 0, tzinfo=timezone.utc)
    assert window.unscheduled_since == datetime(2025, 6, 8, 3, 0, tzinfo=timezone.utc)


def test_feed_window_just_after_local_midnight():
    # 02:30 UTC de 11/06 ainda é 10/06 em São Paulo
    window = feed_window(datetime(2025, 6, 11, 2, 30, tzinfo=timezone.utc), "America/Sao_Paulo")

    assert window.today_start == datetime(2025, 6, 10, 3, 0, tzinfo=timezone.utc)


def test_load_feed_orders_scope_and_order(db):
    tenant = create_tenant(db)
    other = create_tenant(db, name="Outra", slug="outra", api_key=TENANT_B_API_KEY)

    recent = create_order(db, tenant_id=tenant.id, created_at=NOW - timedelta(hours=20))
    newest = create_order(db, tenant_id=tenant.id, created_at=NOW - timedelta(hours=1))
    create_order(db, tenant_id=tenant.id, created_at=NOW - timedelta(days=3))
    tomorrow = create_order(
        db,
        tenant_id=tenant.id,
        created_at=NOW - timedelta(days=5),
        scheduled_at=NOW + timedelta(days=1),
    )
    today_later = create_order(
        db,
        tenant_id=tenant.id,
        created_at=NOW - timedelta(hours=2),
        scheduled_at=NOW + timedelta(hours=3),
    )
    create_order(db, tenant_id=tenant.id, created_at=NOW, scheduled_at=NOW - timedelta(days=1))
    create_order(db, tenant_id=tenant.id, created_at=NOW, scheduled_at=NOW + timedelta(days=3))
    create_order(db, tenant_id=other.id, created_at=NOW)

    orders = load_feed_orders(db, tenant.id, now=NOW)

    assert [order.id for order in orders] == [today_later.id, tomorrow.id, newest.id, recent.id]


def test_load_feed_orders_is_capped(db):
    tenant = create_tenant(db)
    for minutes in range(5):
        create_order(db, tenant_id=tenant.id, created_at=NOW - timedelta(minutes=minutes))

    orders = load_feed_orders(db, tenant.id, now=NOW, limit=3)

    assert len(orders) == 3


def test_format_event():
    frame = format_event("error", message="Erro ao buscar pedidos", error="boom")

    assert _parse(frame) == {"type": "error", "orders": [], "message": "Erro ao buscar pedidos", "error": "boom"}


def test_stream_emits_initial_then_updates(db, session_factory):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id)

    frames = _collect(
        order_feed_events(FakeRequest(connected_polls=3), tenant.id, interval=0, session_factory=session_factory)
    )

    events = [_parse(frame) for frame in frames]
    assert [event["type"] for event in events] == ["initial", "update", "update"]
    assert events[0]["orders"][0]["id"] == order.id
    assert events[0]["orders"][0]["status"] == "pending"


def test_stream_only_contains_own_tenant(db, session_factory):
    tenant = create_tenant(db)
    other = create_tenant(db, name="Outra", slug="outra", api_key=TENANT_B_API_KEY)
    create_order(db, tenant_id=other.id)

    frames = _collect(order_feed_events(FakeRequest(), tenant.id, interval=0, session_factory=session_factory))

    assert _parse(frames[0]) == {"type": "initial", "orders": []}


def test_stream_error_frame_keeps_connection(db):
    calls = {"count": 0}

    def broken_factory():
        calls["count"] += 1
        raise RuntimeError("banco fora do ar")

    frames = _collect(order_feed_events(FakeRequest(connected_polls=2), "t1", interval=0, session_factory=broken_factory))

    events = [_parse(frame) for frame in frames]
    assert [event["type"] for event in events] == ["error", "error"]
    assert events[0]["message"] == "Erro ao buscar pedidos"
    assert events[0]["error"] == "banco fora do ar"
    assert calls["count"] == 2


def test_stream_stops_when_client_disconnects(session_factory):
    frames = _collect(order_feed_events(FakeRequest(connected_polls=0), "t1", interval=0, session_factory=session_factory))

    assert frames == []

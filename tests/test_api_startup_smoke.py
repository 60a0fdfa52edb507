from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/orders",
    "/api/orders/stream",
    "/api/orders/{order_id}",
    "/api/orders/{order_id}/status",
    "/api/orders/{order_id}/mark-out-for-delivery",
    "/api/orders/{order_id}/mark-printed",
    "/api/orders/{order_id}/request-print",
    "/api/orders/{order_id}/clear-print-request",
    "/api/orders/{order_id}/reprint",
    "/api/orders/{order_id}/notify-delivery",
    "/api/orders/{order_id}/notify-printed",
    "/api/message-usage",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/me",
    "/internal/metrics",
    "/internal/metrics/tenants",
}


def test_api_startup_and_router_registration(monkeypatch):
    from pedidos_express import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health")
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_stream_route_is_matched_before_order_detail():
    from pedidos_express import main

    paths = [route.path for route in main.app.routes]

    assert paths.index("/api/orders/stream") < paths.index("/api/orders/{order_id}")


def test_request_id_and_metrics_use_route_template(monkeypatch):
    from pedidos_express import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        echoed = client.get("/health", headers={"X-Request-ID": "req-123"})
        generated = client.get("/health")
        client.get("/api/orders/aaa")
        client.get("/api/orders/bbb")
        metrics = client.get("/internal/metrics").json()

    assert echoed.headers["X-Request-ID"] == "req-123"
    assert generated.headers["X-Request-ID"]
    endpoint = metrics["endpoints"]["GET /api/orders/{order_id}"]
    assert endpoint["total_requests"] == 2
    assert endpoint["error_count"] == 2
    assert "GET /api/orders/aaa" not in metrics["endpoints"]

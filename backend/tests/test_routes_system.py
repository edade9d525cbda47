from unittest import mock

from smartbill.services.cache_service import CacheError


def test_health_healthy(client, db_session):
    resp = client.get("/health")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["status"] == "healthy"
    assert body["checks"]["cache"]["backend"] == "memory"


def test_health_degraded_when_cache_down(client, services, db_session):
    with mock.patch.object(services.cache, "ping", side_effect=CacheError("down")):
        resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "degraded"


def test_health_unhealthy_when_database_down(client, services, db_session):
    from smartbill.services.record_store import StoreError

    with mock.patch.object(services.store, "ping", side_effect=StoreError("down")):
        resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.get_json()["status"] == "unhealthy"


def test_reads_survive_cache_outage(client, auth_headers, services, stocked):
    product, _ = stocked(quantity=5)
    with mock.patch.object(services.cache, "get", side_effect=CacheError("down")), \
            mock.patch.object(services.cache, "set_with_expiry", side_effect=CacheError("down")):
        resp = client.get(f"/api/products/{product.id}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["stock"] == 5


def test_cart_round_trip(client, auth_headers, db_session):
    assert client.get("/api/cart", headers=auth_headers).get_json()["data"]["items"] == []

    resp = client.put("/api/cart", json={"items": [{"product_id": 1, "quantity": 2}]}, headers=auth_headers)
    assert resp.status_code == 200

    cart = client.get("/api/cart", headers=auth_headers).get_json()["data"]
    assert cart["items"] == [{"product_id": 1, "quantity": 2}]
    assert client.get("/api/cart", headers={"X-User-Id": "2"}).get_json()["data"]["items"] == []

    client.delete("/api/cart", headers=auth_headers)
    assert client.get("/api/cart", headers=auth_headers).get_json()["data"]["items"] == []

    assert client.put("/api/cart", json={"items": "nope"}, headers=auth_headers).status_code == 400


def test_cart_put_reports_unavailable_cache(client, auth_headers, services, db_session):
    with mock.patch.object(services.cache, "set_with_expiry", side_effect=CacheError("down")):
        resp = client.put("/api/cart", json={"items": []}, headers=auth_headers)
    assert resp.status_code == 503

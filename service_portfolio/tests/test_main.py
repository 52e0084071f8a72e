"""
Unit tests for the Portfolio service routes.
"""

import asyncio
from datetime import date

import pytest
from fastapi.testclient import TestClient

from shared.errors import StoreError
from service_portfolio.app.cache import Resource, WriteOperation
from service_portfolio.app.main import PortfolioService, create_app, parse_record_id


class TestPortfolioService:
    """Test cases for PortfolioService."""

    @pytest.fixture
    def service(self, fake_store):
        return PortfolioService(store=fake_store)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "portfolio"
        assert data["resources"] == ["settings", "experiences", "certifications", "projects", "posts"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["postgres"] == "ok"
        assert data["dependencies"]["cache"]["posts"] == "empty"

    def test_health_reports_store_down(self, client, fake_store):
        fake_store.healthy = False
        response = client.get("/health")
        assert response.json()["dependencies"]["postgres"] == "error"

    def test_metrics_endpoint(self, client):
        client.get("/api/posts")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "cache_requests_total" in response.text

    def test_create_app(self, fake_store):
        app = create_app(fake_store)
        assert any(getattr(route, "path", None) == "/api/settings" for route in app.routes)

    def test_service_initialization(self, service, fake_store):
        assert service.service_name == "portfolio"
        assert service.store is fake_store
        assert service.cache.store is fake_store
        assert service.cache.ttl_seconds == service.config.cache_ttl_seconds


class TestReadEndpoints:
    """Cached list endpoints."""

    @pytest.fixture
    def client(self, fake_store):
        return TestClient(PortfolioService(store=fake_store).app)

    def test_settings_served_from_cache(self, client, fake_store):
        first = client.get("/api/settings")
        second = client.get("/api/settings")

        assert first.status_code == 200
        assert first.json() == {"site_title": "My Portfolio", "whatsapp": "+62800000"}
        assert second.json() == first.json()
        assert fake_store.fetch_calls[Resource.SETTINGS] == 1

    def test_experiences_shape(self, client):
        [experience] = client.get("/api/experiences").json()

        assert experience["tags"] == ["go", "rust", "ts"]
        assert experience["images"] == ["a.png", "b.png"]
        assert experience["image"] == "a.png"
        assert experience["startDate"] == "2022-01-01"

    def test_certifications_shape(self, client):
        [certification] = client.get("/api/certifications").json()

        assert certification["issueDate"] == "2024-03"
        assert certification["expiryDate"] == ""
        assert certification["skills"] == []

    def test_projects_default_tags(self, client):
        [project] = client.get("/api/projects").json()
        assert project["tags"] == []

    def test_published_posts(self, client, fake_store):
        response = client.get("/api/posts/published")

        assert response.status_code == 200
        assert [post["slug"] for post in response.json()] == ["first"]
        client.get("/api/posts")
        assert fake_store.fetch_calls[Resource.POSTS] == 1

    def test_post_by_slug(self, client):
        response = client.get("/api/posts/first")
        assert response.status_code == 200
        assert response.json()["title"] == "First"

    def test_post_by_slug_missing(self, client):
        response = client.get("/api/posts/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_record_lookup(self, client):
        assert client.get("/api/projects/1").json()["title"] == "Blog Engine"
        assert client.get("/api/projects/99").status_code == 404
        assert client.get("/api/projects/abc").status_code == 400

    def test_store_outage_is_server_error(self, client, fake_store):
        fake_store.fetch_failures[Resource.PROJECTS] = StoreError("connection refused")

        response = client.get("/api/projects")

        assert response.status_code == 503
        assert response.json()["code"] == "STORE_ERROR"

    def test_cache_stats(self, client):
        client.get("/api/posts")
        stats = client.get("/api/cache/stats").json()
        assert stats["resources"]["posts"]["state"] == "fresh"
        assert stats["resources"]["posts"]["items"] == 2


class TestWriteEndpoints:
    """Dashboard writes invalidate the affected collection."""

    @pytest.fixture
    def service(self, fake_store):
        return PortfolioService(store=fake_store)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_create_post_then_list(self, client, service, fake_store):
        client.get("/api/posts")

        response = client.post("/api/posts", json={"title": "Hello World", "content": "<p>hi</p>"})

        assert response.status_code == 200
        created = response.json()
        assert created["slug"] == "hello-world"
        assert created["category"] == "Jurnal & Catatan"
        assert created["status"] == "draft"
        assert created["reading_time"] == 1
        assert service.cache.state(Resource.POSTS) == "empty"

        posts = client.get("/api/posts").json()
        assert fake_store.fetch_calls[Resource.POSTS] == 2
        assert "hello-world" in [post["slug"] for post in posts]

    def test_blank_title_rejected_without_invalidation(self, client, service, fake_store):
        client.get("/api/posts")

        response = client.post("/api/posts", json={"title": "   "})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert fake_store.writes == []
        assert service.cache.state(Resource.POSTS) == "fresh"

    def test_update_experience(self, client, fake_store):
        response = client.put(
            "/api/experiences/1",
            json={"title": "Lead Engineer", "image": "solo.png", "tags": ["python"], "start_date": "2023-02-01"},
        )

        assert response.status_code == 200
        resource, operation, payload = fake_store.writes[0]
        assert resource is Resource.EXPERIENCES
        assert operation is WriteOperation.UPDATE
        assert payload["id"] == 1
        assert payload["images"] == ["solo.png"]
        assert payload["type"] is None
        assert payload["start_date"] == date(2023, 2, 1)

        [experience] = client.get("/api/experiences").json()
        assert experience["title"] == "Lead Engineer"
        assert experience["tags"] == ["python"]
        assert experience["type"] == "work"

    def test_update_missing_record(self, client, service):
        client.get("/api/projects")

        response = client.put("/api/projects/42", json={"title": "Ghost"})

        assert response.status_code == 404
        assert service.cache.state(Resource.PROJECTS) == "fresh"

    def test_title_only_update_keeps_post_published(self, client, fake_store):
        response = client.put("/api/posts/1", json={"title": "First, revised"})

        assert response.status_code == 200
        _, _, payload = fake_store.writes[0]
        assert payload["status"] is None
        assert payload["category"] is None
        assert payload["slug"] is None

        published = client.get("/api/posts/published").json()
        assert [post["title"] for post in published] == ["First, revised"]
        assert published[0]["slug"] == "first"

    @pytest.mark.parametrize("record_id", ["0", "-3", "abc"])
    def test_invalid_id(self, client, record_id):
        response = client.delete(f"/api/projects/{record_id}")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid ID"

    def test_delete_project(self, client, service, fake_store):
        client.get("/api/projects")

        response = client.delete("/api/projects/1")

        assert response.json() == {"success": True}
        assert service.cache.state(Resource.PROJECTS) == "empty"
        assert client.get("/api/projects").json() == []

    def test_create_certification_expands_month(self, client, fake_store):
        response = client.post(
            "/api/certifications",
            json={"name": "Kubernetes", "issueDate": "2023-07", "credentialId": "K8S", "skills": ["k8s"]},
        )

        assert response.status_code == 200
        _, _, payload = fake_store.writes[0]
        assert payload["issue_date"] == date(2023, 7, 1)
        assert payload["expiry_date"] is None
        assert payload["credential_id"] == "K8S"

        names = [c["name"] for c in client.get("/api/certifications").json()]
        assert "Kubernetes" in names

    def test_settings_bulk(self, client, service, fake_store):
        client.get("/api/settings")

        response = client.post("/api/settings/bulk", json={"settings": {"site_title": "New", "footer": None}})

        assert response.json()["success"] is True
        _, operation, payload = fake_store.writes[0]
        assert operation is WriteOperation.UPDATE
        assert payload == {"site_title": "New", "footer": ""}
        assert client.get("/api/settings").json()["site_title"] == "New"
        assert fake_store.fetch_calls[Resource.SETTINGS] == 2

    def test_settings_bulk_requires_settings(self, client, fake_store):
        response = client.post("/api/settings/bulk", json={})
        assert response.status_code == 400
        assert fake_store.writes == []

    def test_write_store_failure(self, client, service, fake_store):
        client.get("/api/posts")
        fake_store.write_failure = StoreError("write failed")

        response = client.post("/api/posts", json={"title": "Doomed"})

        assert response.status_code == 503
        assert service.cache.state(Resource.POSTS) == "fresh"


class TestLifecycle:
    """Start/stop and background preload."""

    @pytest.mark.asyncio
    async def test_start_preloads_in_background(self, fake_store):
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = True

        await service.start()
        summary = await service._preload_task

        assert fake_store.started
        assert len(summary["loaded"]) == 5
        assert all(service.cache.is_fresh(resource) for resource in Resource)

        await service.stop()
        assert fake_store.stopped

    @pytest.mark.asyncio
    async def test_start_without_preload(self, fake_store):
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = False

        await service.start()

        assert service._preload_task is None
        assert sum(fake_store.fetch_calls.values()) == 0
        await service.stop()

    def test_lifespan_runs_start_and_stop(self, fake_store):
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = False

        with TestClient(service.app) as client:
            assert client.get("/api/posts").status_code == 200
            assert fake_store.started

        assert fake_store.stopped

    def test_serves_while_store_down_at_startup(self, fake_store):
        fake_store.start_failure = StoreError("PostgreSQL is unavailable")
        for resource in Resource:
            fake_store.fetch_failures[resource] = StoreError("connection refused")
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = True

        with TestClient(service.app) as client:
            assert client.get("/").status_code == 200

            response = client.get("/api/posts")
            assert response.status_code == 503
            assert response.json()["code"] == "STORE_ERROR"

            fake_store.fetch_failures.clear()
            assert len(client.get("/api/posts").json()) == 2

        assert fake_store.stopped

    @pytest.mark.asyncio
    async def test_get_does_not_wait_for_unfinished_preload(self, fake_store):
        preload_gates = [asyncio.Event() for _ in Resource]
        fake_store.fetch_gates.extend(preload_gates)
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = True

        await service.start()
        # every preload fetch is now parked on its gate
        while fake_store.fetch_gates:
            await asyncio.sleep(0)

        posts = await asyncio.wait_for(service.cache.get(Resource.POSTS), timeout=1)

        assert [post["slug"] for post in posts] == ["second", "first"]
        assert not service._preload_task.done()

        for gate in preload_gates:
            gate.set()
        summary = await service._preload_task
        assert summary["errors"] == {}
        await service.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_unfinished_preload(self, fake_store):
        fake_store.fetch_gates.extend(asyncio.Event() for _ in Resource)
        service = PortfolioService(store=fake_store)
        service.config.preload_on_startup = True

        await service.start()
        while fake_store.fetch_gates:
            await asyncio.sleep(0)
        await service.stop()

        assert service._preload_task.cancelled()
        assert fake_store.stopped


class TestParseRecordId:

    def test_valid(self):
        assert parse_record_id("12") == 12

    @pytest.mark.parametrize("value", ["0", "-1", "1.5", "x", ""])
    def test_invalid(self, value):
        with pytest.raises(Exception) as exc_info:
            parse_record_id(value)
        assert exc_info.value.code == "VALIDATION_ERROR"

import time

from fastapi.testclient import TestClient

from shortlink_app.events.models import TOPIC_URL_CLICKED, TOPIC_URL_CREATED
from shortlink_app.exceptions import RepositoryError


def wait_for(condition, timeout=2.0):
    """Clicks are recorded after the redirect response; poll until they land"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


class TestURLShortener:
    """Test URL shortener endpoints"""

    def test_create_short_url(self, client: TestClient, event_sink):
        """Test creating a short URL"""
        url_data = {"url": "https://www.google.com/", "owner_id": 1}

        response = client.post("/api/v1/urls", json=url_data)
        assert response.status_code == 201

        data = response.json()
        assert "short_code" in data
        assert data["short_url"].endswith(f"/{data['short_code']}")
        assert data["original_url"] == url_data["url"]
        assert data["click_count"] == 0
        assert data["expires_at"] is None
        assert len(event_sink.published(TOPIC_URL_CREATED)) == 1

    def test_create_is_idempotent_per_owner(self, client: TestClient):
        url_data = {"url": "https://www.google.com/", "owner_id": 1}

        first = client.post("/api/v1/urls", json=url_data).json()
        second = client.post("/api/v1/urls", json=url_data).json()
        other = client.post("/api/v1/urls", json={"url": url_data["url"], "owner_id": 2}).json()

        assert first["short_code"] == second["short_code"]
        assert other["short_code"] != first["short_code"]

    def test_create_trims_whitespace(self, client: TestClient):
        padded = client.post("/api/v1/urls", json={"url": "  https://www.google.com/ ", "owner_id": 1}).json()
        plain = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1}).json()

        assert padded["original_url"] == "https://www.google.com/"
        assert padded["short_code"] == plain["short_code"]

    def test_create_with_expiry_and_metadata(self, client: TestClient):
        url_data = {
            "url": "https://www.python.org/",
            "owner_id": 1,
            "expires_in_seconds": 3600,
            "metadata": {"campaign": "docs"},
        }

        response = client.post("/api/v1/urls", json=url_data)

        assert response.status_code == 201
        assert response.json()["expires_at"] is not None

    def test_create_invalid_url(self, client: TestClient):
        response = client.post("/api/v1/urls", json={"url": "ftp://example.com/file", "owner_id": 1})

        assert response.status_code == 400
        assert "HTTP" in response.json()["detail"]

    def test_create_blacklisted_url(self, client: TestClient):
        response = client.post("/api/v1/urls", json={"url": "https://bit.ly/abc", "owner_id": 1})

        assert response.status_code == 400
        assert "blacklisted" in response.json()["detail"]

    def test_create_requires_positive_owner(self, client: TestClient):
        response = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 0})
        assert response.status_code == 422

    def test_get_url_info(self, client: TestClient):
        """Test getting URL information"""
        create_response = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1})
        short_code = create_response.json()["short_code"]

        response = client.get(f"/api/v1/urls/{short_code}")
        assert response.status_code == 200

        data = response.json()
        assert data["short_code"] == short_code
        assert data["original_url"] == "https://www.google.com/"

    def test_get_nonexistent_url(self, client: TestClient):
        """Test getting info for non-existent URL"""
        response = client.get("/api/v1/urls/nonexistent")
        assert response.status_code == 404

    def test_redirect_url(self, client: TestClient):
        """Test URL redirection"""
        create_response = client.post("/api/v1/urls", json={"url": "https://www.github.com/", "owner_id": 1})
        short_code = create_response.json()["short_code"]

        response = client.get(f"/{short_code}", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "https://www.github.com/"

    def test_redirect_nonexistent_url(self, client: TestClient):
        """Test redirecting non-existent URL"""
        response = client.get("/nonexistent", follow_redirects=False)
        assert response.status_code == 404

    def test_redirect_records_click(self, client: TestClient, repository, event_sink):
        create_response = client.post("/api/v1/urls", json={"url": "https://stackoverflow.com/", "owner_id": 1})
        short_code = create_response.json()["short_code"]

        client.get(f"/{short_code}", follow_redirects=False, headers={"User-Agent": "pytest-agent"})

        assert wait_for(lambda: repository.get_by_short_code(short_code).click_count == 1)
        assert wait_for(lambda: len(event_sink.published(TOPIC_URL_CLICKED)) == 1)
        assert event_sink.published(TOPIC_URL_CLICKED)[0].data["user_agent"] == "pytest-agent"

    def test_update_url(self, client: TestClient, repository):
        create_response = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1})
        short_code = create_response.json()["short_code"]

        response = client.patch(
            f"/api/v1/urls/{short_code}",
            json={"expires_in_seconds": 600, "metadata": {"team": "growth"}}
        )

        assert response.status_code == 200
        assert response.json()["expires_at"] is not None
        assert repository.get_by_short_code(short_code).url_metadata == {"team": "growth"}

    def test_update_nonexistent_url(self, client: TestClient):
        response = client.patch("/api/v1/urls/nonexistent", json={"expires_in_seconds": 60})

        assert response.status_code == 404
        assert response.json()["detail"] == "Short URL not found"

    def test_delete_url(self, client: TestClient):
        create_response = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1})
        short_code = create_response.json()["short_code"]

        response = client.delete(f"/api/v1/urls/{short_code}")
        assert response.status_code == 204

        assert client.get(f"/api/v1/urls/{short_code}").status_code == 404
        assert client.get(f"/{short_code}", follow_redirects=False).status_code == 404
        assert client.delete(f"/api/v1/urls/{short_code}").status_code == 404

    def test_list_owner_urls(self, client: TestClient):
        codes = [
            client.post("/api/v1/urls", json={"url": f"https://example.com/{n}", "owner_id": 5}).json()["short_code"]
            for n in range(3)
        ]

        response = client.get("/api/v1/users/5/urls", params={"limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["limit"] == 2
        assert {u["short_code"] for u in data["urls"]} <= set(codes)

    def test_list_rejects_out_of_range_limit(self, client: TestClient):
        assert client.get("/api/v1/users/5/urls", params={"limit": 0}).status_code == 422
        assert client.get("/api/v1/users/5/urls", params={"limit": 101}).status_code == 422

    def test_validate_url(self, client: TestClient):
        ok = client.post("/api/v1/urls/validate", json={"url": "https://www.google.com/"})
        bad = client.post("/api/v1/urls/validate", json={"url": "not a url"})

        assert ok.json() == {"valid": True, "reason": None}
        assert bad.json()["valid"] is False
        assert bad.json()["reason"]

    def test_store_failure_is_internal_error(self, client: TestClient, repository, monkeypatch):
        def broken(*args, **kwargs):
            raise RepositoryError("connection reset")

        monkeypatch.setattr(repository, "get_by_owner_and_url", broken)

        response = client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1})

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}


class TestServiceEndpoints:

    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self, client: TestClient):
        client.post("/api/v1/urls", json={"url": "https://www.google.com/", "owner_id": 1})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "url_create_requests_total" in response.text
        assert "url_duplicates_prevented_total" in response.text

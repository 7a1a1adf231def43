"""Integration tests for the navigation endpoint."""

from fastapi.testclient import TestClient


class TestNavigation:
    """Tests for GET /api/v1/navigation."""

    def test_signed_out_links(self, client: TestClient) -> None:
        response = client.get("/api/v1/navigation", params={"path": "/"})

        assert response.status_code == 200
        data = response.json()
        assert data["signed_in"] is False
        assert [link["label"] for link in data["visible_links"]] == ["Shop", "Cart", "Sign In", "Register"]
        assert data["redirect_to"] is None

    def test_signed_out_account_page_redirects_to_login(self, client: TestClient) -> None:
        data = client.get("/api/v1/navigation", params={"path": "/account"}).json()

        assert data["current_path"] == "/account/"
        assert data["redirect_to"] == "/login/"

    def test_signed_in_login_page_redirects_to_account(
        self,
        client: TestClient,
        auth_headers: dict[str, str],
    ) -> None:
        data = client.get("/api/v1/navigation", params={"path": "/login/"}, headers=auth_headers).json()

        assert data["signed_in"] is True
        assert data["redirect_to"] == "/account/"
        assert "Sign Out" in [link["label"] for link in data["visible_links"]]

    def test_stale_token_is_treated_as_signed_out(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/navigation",
            params={"path": "/account/"},
            headers={"Authorization": "Bearer not.a.jwt"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["signed_in"] is False
        assert data["redirect_to"] == "/login/"

    def test_malformed_header_is_treated_as_signed_out(self, client: TestClient) -> None:
        response = client.get("/api/v1/navigation", headers={"Authorization": "Basic abc"})

        assert response.status_code == 200
        assert response.json()["signed_in"] is False

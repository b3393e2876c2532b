"""
HTTP surface: routing, dependency wiring and the {"error": ...} body.
"""
import pytest
from fastapi.testclient import TestClient

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.main import app
from gsc_pipeline.models.base import get_db
from gsc_pipeline.models.search_console_data import IndexingRequest


@pytest.fixture
def api(db, google):
    def override_db():
        yield db

    async def override_client():
        async with google.client() as client:
            yield client

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_http_client] = override_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_connection_is_404_with_error_body(api):
    response = api.post("/sync/unknown-project")
    assert response.status_code == 404
    assert response.json() == {"error": "No GSC connection found. Connect Google Search Console first."}


def test_verify_credentials_lists_sites(api, private_key_pem):
    response = api.post(
        "/connections/verify",
        json={"credentials": {"client_email": "svc@proj.iam.gserviceaccount.com", "private_key": private_key_pem}},
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "sites": [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}],
    }


def test_verify_rejects_incomplete_credentials(api):
    response = api.post("/connections/verify", json={"credentials": {"client_email": "a@b.com"}})
    assert response.status_code == 400
    assert "private_key" in response.json()["error"]


def test_token_rejection_surfaces_as_500(api, connection, google):
    google.token_status = 401
    google.token_body = {"error": "invalid_client"}

    response = api.post("/sync/proj-1")

    assert response.status_code == 500
    assert "invalid_client" in response.json()["error"]


def test_submit_and_list_indexing(api, connection):
    response = api.post("/indexing/proj-1/submit", json={"urls": ["https://example.com/a"]})
    assert response.status_code == 200
    assert response.json()["submitted"] == 1

    listed = api.get("/indexing/proj-1").json()["requests"]
    assert [r["url"] for r in listed] == ["https://example.com/a"]
    assert listed[0]["status"] == "submitted"

    quota = api.get("/indexing/proj-1/quota").json()
    assert quota["used"] == 1


def test_retry_submitted_request_conflicts(api, db, connection):
    request = IndexingRequest(project_id="proj-1", url="https://example.com/a", status="submitted")
    db.add(request)
    db.commit()

    response = api.post("/indexing/proj-1/retry", json={"request_id": request.id})

    assert response.status_code == 409
    assert "error" in response.json()


def test_retry_unknown_request_is_404(api, connection):
    response = api.post("/indexing/proj-1/retry", json={"request_id": 12345})
    assert response.status_code == 404
    assert response.json() == {"error": "Request not found"}


def test_empty_url_list_is_400(api, connection):
    response = api.post("/indexing/proj-1/submit", json={"urls": []})
    assert response.status_code == 400
    assert response.json() == {"error": "urls array is required"}


def test_submit_without_urls_field_is_400(api, connection):
    response = api.post("/indexing/proj-1/submit", json={})
    assert response.status_code == 400
    assert set(response.json()) == {"error"}
    assert "urls" in response.json()["error"]


def test_retry_with_non_integer_id_is_400(api, connection):
    response = api.post("/indexing/proj-1/retry", json={"request_id": "abc"})
    assert response.status_code == 400
    assert set(response.json()) == {"error"}
    assert "request_id" in response.json()["error"]


def test_coverage_scan_without_inventory_is_400(api, connection):
    response = api.post("/coverage/proj-1/scan")
    assert response.status_code == 400
    assert "site_urls" in response.json()["error"]


def test_sitemap_delete_requires_query_param(api, connection):
    missing = api.delete("/sitemaps/proj-1")
    assert missing.status_code == 400
    assert "sitemap_url" in missing.json()["error"]
    response = api.delete("/sitemaps/proj-1", params={"sitemap_url": "https://example.com/sitemap.xml"})
    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_run_schedules_with_nothing_due(api):
    response = api.post("/schedules/run")
    assert response.status_code == 200
    assert response.json()["processed"] == 0

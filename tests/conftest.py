"""
Shared fixtures: in-memory database, a throwaway service-account key, and a
fake Google backend served through httpx.MockTransport.
"""
import json
import os

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_DIR", "")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("PROVIDER_CALL_INTERVAL_SECONDS", "0")

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gsc_pipeline.models.base import init_db
from gsc_pipeline.models.search_console_data import GSCConnection

SITE_URL = "https://example.com/"
CLIENT_EMAIL = "sync@example-project.iam.gserviceaccount.com"


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def connection(db, private_key_pem):
    conn = GSCConnection(
        project_id="proj-1",
        owner_id="owner-1",
        client_email=CLIENT_EMAIL,
        private_key=private_key_pem,
        site_url=SITE_URL,
    )
    db.add(conn)
    db.commit()
    return conn


class FakeGoogle:
    """
    Routes requests for the token endpoint and the Search Console, URL
    Inspection and Indexing APIs to overridable handlers. Every request is
    recorded in ``calls``.
    """

    def __init__(self):
        self.calls = []
        self.token_status = 200
        self.token_body = {"access_token": "ya29.test-token", "expires_in": 3600, "token_type": "Bearer"}
        self.sites = [{"siteUrl": SITE_URL, "permissionLevel": "siteOwner"}]
        self.sitemaps = []
        # Handlers return an httpx.Response or raise httpx.HTTPError
        self.analytics = lambda dimension, start_row: httpx.Response(200, json={"rows": []})
        self.publish = lambda url, request_type: httpx.Response(
            200, json={"urlNotificationMetadata": {"url": url, "latestUpdate": {"url": url, "type": request_type}}}
        )
        self.metadata = lambda url: httpx.Response(200, json={"url": url, "latestUpdate": {"type": "URL_UPDATED"}})
        self.inspect = lambda url: httpx.Response(
            200,
            json={"inspectionResult": {"indexStatusResult": {
                "verdict": "PASS",
                "coverageState": "Submitted and indexed",
                "lastCrawlTime": "2024-01-01T10:00:00Z",
            }}},
        )
        self.sitemap_write = lambda method, sitemap_url: httpx.Response(204)

    def calls_to(self, fragment):
        return [request for request in self.calls if fragment in str(request.url)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = request.url
        path = url.path

        if url.host == "oauth2.googleapis.com":
            return httpx.Response(self.token_status, json=self.token_body)

        if path.endswith("/searchAnalytics/query"):
            body = json.loads(request.content)
            return self.analytics(body["dimensions"][0], body["startRow"])

        if "urlInspection" in path:
            return self.inspect(json.loads(request.content)["inspectionUrl"])

        if path.endswith("urlNotifications:publish"):
            body = json.loads(request.content)
            return self.publish(body["url"], body["type"])

        if path.endswith("urlNotifications/metadata"):
            return self.metadata(url.params["url"])

        if "/sitemaps/" in path:
            return self.sitemap_write(request.method, path.rsplit("/", 1)[-1])

        if path.endswith("/sitemaps"):
            return httpx.Response(200, json={"sitemap": self.sitemaps})

        if path.endswith("/sites"):
            return httpx.Response(200, json={"siteEntry": self.sites})

        return httpx.Response(404, json={"error": {"code": 404, "message": f"No route for {path}"}})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def google():
    return FakeGoogle()


def google_error(status, message, reason=None, grpc_status=None):
    """Google JSON error envelope"""
    error = {"code": status, "message": message}
    if reason:
        error["errors"] = [{"reason": reason, "message": message}]
    if grpc_status:
        error["status"] = grpc_status
    return httpx.Response(status, json={"error": error})


@pytest.fixture
def make_error():
    return google_error

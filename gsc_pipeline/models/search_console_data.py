"""
Google Search Console Data Models

Connections (service-account credentials), synced search analytics metrics,
indexing requests, URL inspection coverage, the URL inventory and indexing
schedules.
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text, JSON, Date, UniqueConstraint, Index

from gsc_pipeline.models.base import Base
from gsc_pipeline.utils.helpers import utcnow


class GSCConnection(Base):
    """Service-account connection to one Search Console property (one per project)"""
    __tablename__ = "gsc_connections"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False, unique=True)
    owner_id = Column(String, index=True, nullable=False)

    # Service account
    client_email = Column(String, nullable=False)
    private_key = Column(Text, nullable=False)
    # PEM, PKCS8 RSA
    site_url = Column(String, nullable=True)
    # e.g. sc-domain:example.com or https://example.com/

    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<GSCConnection {self.project_id} - {self.site_url}>"


class SEOMetric(Base):
    """
    One search analytics row for a single dimension

    Exactly one key column is populated per dimension_type:
    date -> metric_date, query -> query, page -> url, country -> country,
    device -> device, searchAppearance -> appearance_type.
    """
    __tablename__ = "seo_metrics"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False)
    owner_id = Column(String, index=True, nullable=False)
    dimension_type = Column(String, index=True, nullable=False)

    # Keys
    metric_date = Column(Date, index=True, nullable=True)
    query = Column(String, nullable=True)
    url = Column(String, nullable=True)
    country = Column(String, nullable=True)
    device = Column(String, nullable=True)
    appearance_type = Column(String, nullable=True)

    # Performance metrics
    clicks = Column(Integer, default=0)
    impressions = Column(Integer, default=0)
    ctr = Column(Float, default=0.0)
    # Percentage, 2dp
    position = Column(Float, default=0.0)
    # 1dp

    synced_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_seo_metrics_project_dimension", "project_id", "dimension_type"),
    )

    def __repr__(self):
        return f"<SEOMetric {self.project_id} {self.dimension_type}>"


class IndexingRequest(Base):
    """One URL notification sent to the Google Indexing API (audit trail, never deleted)"""
    __tablename__ = "indexing_requests"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False)
    owner_id = Column(String, index=True, nullable=True)

    url = Column(String, index=True, nullable=False)
    request_type = Column(String, nullable=False, default="URL_UPDATED")
    # URL_UPDATED, URL_DELETED
    status = Column(String, index=True, nullable=False, default="pending")
    # pending, submitted, failed, quota_exceeded

    response_code = Column(Integer, nullable=True)
    response_message = Column(String, nullable=True)
    fail_reason = Column(Text, nullable=True)
    retries = Column(Integer, default=0, nullable=False)

    submitted_at = Column(DateTime, default=utcnow, index=True, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "url": self.url,
            "request_type": self.request_type,
            "status": self.status,
            "response_code": self.response_code,
            "response_message": self.response_message,
            "fail_reason": self.fail_reason,
            "retries": self.retries,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<IndexingRequest {self.url} - {self.status}>"


class IndexCoverage(Base):
    """URL Inspection result, one row per (project_id, url)"""
    __tablename__ = "index_coverage"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False)
    owner_id = Column(String, nullable=True)
    url = Column(String, index=True, nullable=False)

    verdict = Column(String, nullable=True)
    # PASS, PARTIAL, FAIL, NEUTRAL, VERDICT_UNSPECIFIED
    coverage_state = Column(String, nullable=True)
    # e.g. "Submitted and indexed", "Crawled - currently not indexed"
    indexing_state = Column(String, nullable=True)
    robotstxt_state = Column(String, nullable=True)
    page_fetch_state = Column(String, nullable=True)
    crawled_as = Column(String, nullable=True)
    last_crawl_time = Column(DateTime, nullable=True)
    referring_urls = Column(JSON, nullable=True)
    sitemap = Column(String, nullable=True)

    inspected_at = Column(DateTime, index=True, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "url", name="uq_index_coverage_project_url"),
    )

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "url": self.url,
            "verdict": self.verdict,
            "coverage_state": self.coverage_state,
            "indexing_state": self.indexing_state,
            "robotstxt_state": self.robotstxt_state,
            "page_fetch_state": self.page_fetch_state,
            "crawled_as": self.crawled_as,
            "last_crawl_time": self.last_crawl_time.isoformat() if self.last_crawl_time else None,
            "referring_urls": self.referring_urls or [],
            "sitemap": self.sitemap,
            "inspected_at": self.inspected_at.isoformat() if self.inspected_at else None,
        }

    def __repr__(self):
        return f"<IndexCoverage {self.url} - {self.verdict}>"


class SiteUrl(Base):
    """URL inventory for a project, with a summary of the latest indexing request"""
    __tablename__ = "site_urls"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False)
    owner_id = Column(String, nullable=True)
    url = Column(String, nullable=False)

    last_request_status = Column(String, nullable=True)
    last_request_type = Column(String, nullable=True)
    last_request_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "url", name="uq_site_urls_project_url"),
    )

    def __repr__(self):
        return f"<SiteUrl {self.url}>"


class IndexingSchedule(Base):
    """Recurring (cron) or one-off (manual) indexing/inspection run for a project"""
    __tablename__ = "indexing_schedules"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, index=True, nullable=False)

    schedule_type = Column(String, nullable=False, default="cron")
    # cron, manual
    cron_time = Column(String, nullable=True)
    # "HH:MM" UTC
    scheduled_at = Column(DateTime, nullable=True)
    actions = Column(JSON, nullable=False, default=list)
    # ["indexing", "inspection"]
    max_urls = Column(Integer, nullable=True)

    enabled = Column(Boolean, default=True, nullable=False)
    status = Column(String, default="active", nullable=False)
    # cron: active/paused; manual: pending/completed/failed

    last_run_at = Column(DateTime, nullable=True)
    last_run_result = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<IndexingSchedule {self.project_id} {self.schedule_type}>"

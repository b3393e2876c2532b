"""
Metrics snapshot writer

Replaces a project's stored search analytics rows with a freshly fetched set:
delete, then insert in batches. A failed batch is logged and skipped rather
than aborting the write; the next sync supersedes this one entirely.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.models.metric_row import Dimension, MetricRow
from gsc_pipeline.models.search_console_data import GSCConnection, SEOMetric
from gsc_pipeline.utils.helpers import chunk_list, utcnow
from gsc_pipeline.utils.logger import log

settings = get_settings()


@dataclass
class WriteResult:
    deleted: int = 0
    inserted: int = 0
    failed: int = 0
    failed_batches: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "deleted": self.deleted,
            "inserted": self.inserted,
            "failed": self.failed,
            "failed_batches": self.failed_batches,
        }


class MetricsWriter:
    """Delete-then-insert persistence of SEOMetric rows for one connection"""

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or settings.metrics_insert_batch_size

    def replace(
        self,
        connection: GSCConnection,
        rows: List[MetricRow],
        dimensions: Optional[Iterable[Dimension]] = None,
    ) -> WriteResult:
        """
        Replace stored metrics for ``connection`` with ``rows``.

        Args:
            connection: Owning connection (project_id/owner_id scope the delete)
            rows: Normalized rows to insert
            dimensions: Restrict the delete to these dimension types; None
                deletes every row for the project and owner

        Returns:
            WriteResult with deleted/inserted/failed counts
        """
        result = WriteResult()

        scope = self.db.query(SEOMetric).filter(
            SEOMetric.project_id == connection.project_id,
            SEOMetric.owner_id == connection.owner_id,
        )
        if dimensions is not None:
            dimension_types = [Dimension(d).value for d in dimensions]
            scope = scope.filter(SEOMetric.dimension_type.in_(dimension_types))

        result.deleted = scope.delete(synchronize_session=False)
        self.db.commit()

        mappings = [
            {
                "project_id": connection.project_id,
                "owner_id": connection.owner_id,
                **row.to_columns(),
            }
            for row in rows
        ]

        for batch_number, batch in enumerate(chunk_list(mappings, self.batch_size)):
            try:
                self.db.bulk_insert_mappings(SEOMetric, batch)
                self.db.commit()
                result.inserted += len(batch)
            except SQLAlchemyError as e:
                self.db.rollback()
                result.failed += len(batch)
                result.failed_batches.append(batch_number)
                log.error(
                    f"Insert error at batch {batch_number * self.batch_size} "
                    f"for project {connection.project_id}: {e}"
                )

        connection.last_sync_at = utcnow()
        self.db.commit()

        log.info(
            f"Metrics replaced for project {connection.project_id}: "
            f"{result.deleted} deleted, {result.inserted} inserted, {result.failed} failed"
        )
        return result

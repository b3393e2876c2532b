"""Database models for the Search Console pipeline"""

from gsc_pipeline.models.search_console_data import (
    GSCConnection,
    SEOMetric,
    IndexingRequest,
    IndexCoverage,
    SiteUrl,
    IndexingSchedule
)

from gsc_pipeline.models.metric_row import (
    Dimension,
    MetricRow,
    DateKey,
    QueryKey,
    PageKey,
    CountryKey,
    DeviceKey,
    SearchAppearanceKey
)

"""
In-memory search analytics rows

Each row carries exactly one key, typed by the dimension it was fetched for.
The key variants replace a struct of optional columns plus a discriminator
string, so a row with zero or several keys cannot be constructed.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Union


class Dimension(str, Enum):
    """Search Console dimensions, valued with their API names"""
    DATE = "date"
    QUERY = "query"
    PAGE = "page"
    COUNTRY = "country"
    DEVICE = "device"
    SEARCH_APPEARANCE = "searchAppearance"


@dataclass(frozen=True)
class DateKey:
    value: date
    dimension = Dimension.DATE
    column = "metric_date"


@dataclass(frozen=True)
class QueryKey:
    value: str
    dimension = Dimension.QUERY
    column = "query"


@dataclass(frozen=True)
class PageKey:
    value: str
    dimension = Dimension.PAGE
    column = "url"


@dataclass(frozen=True)
class CountryKey:
    value: str
    dimension = Dimension.COUNTRY
    column = "country"


@dataclass(frozen=True)
class DeviceKey:
    value: str
    dimension = Dimension.DEVICE
    column = "device"


@dataclass(frozen=True)
class SearchAppearanceKey:
    value: str
    dimension = Dimension.SEARCH_APPEARANCE
    column = "appearance_type"


MetricKey = Union[DateKey, QueryKey, PageKey, CountryKey, DeviceKey, SearchAppearanceKey]

_KEY_TYPES = {
    Dimension.DATE: DateKey,
    Dimension.QUERY: QueryKey,
    Dimension.PAGE: PageKey,
    Dimension.COUNTRY: CountryKey,
    Dimension.DEVICE: DeviceKey,
    Dimension.SEARCH_APPEARANCE: SearchAppearanceKey,
}

KEY_COLUMNS = tuple(key_type.column for key_type in _KEY_TYPES.values())


def make_key(dimension: Dimension, raw: str) -> MetricKey:
    """Build the typed key for a raw ``keys[0]`` value returned by the API"""
    dimension = Dimension(dimension)
    if dimension is Dimension.DATE:
        return DateKey(date.fromisoformat(raw))
    return _KEY_TYPES[dimension](raw)


def normalize_ctr(ctr: Any) -> float:
    """Provider CTR is a 0-1 fraction; stored as a percentage with 2 decimals"""
    return round(float(ctr or 0) * 100, 2)


def normalize_position(position: Any) -> float:
    return round(float(position or 0), 1)


@dataclass(frozen=True)
class MetricRow:
    """One normalized search analytics row for a single dimension"""
    key: MetricKey
    clicks: int
    impressions: int
    ctr: float
    position: float

    @property
    def dimension(self) -> Dimension:
        return self.key.dimension

    @classmethod
    def from_api_row(cls, dimension: Dimension, row: Dict[str, Any]) -> "MetricRow":
        """
        Normalize one ``rows[]`` entry from searchAnalytics/query.

        Only single-dimension queries are issued, so ``keys`` has one element.
        """
        keys = row.get("keys") or []
        if len(keys) != 1:
            raise ValueError(f"Expected exactly one key for dimension {dimension}, got {keys!r}")
        return cls(
            key=make_key(dimension, keys[0]),
            clicks=int(row.get("clicks", 0) or 0),
            impressions=int(row.get("impressions", 0) or 0),
            ctr=normalize_ctr(row.get("ctr")),
            position=normalize_position(row.get("position")),
        )

    def to_columns(self) -> Dict[str, Any]:
        """Column values for SEOMetric; every key column except this row's is None"""
        columns = {column: None for column in KEY_COLUMNS}
        columns[self.key.column] = self.key.value
        columns.update(
            dimension_type=self.dimension.value,
            clicks=self.clicks,
            impressions=self.impressions,
            ctr=self.ctr,
            position=self.position,
        )
        return columns

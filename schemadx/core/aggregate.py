"""Finding aggregation, display filtering and KPI computation.

Filters narrow what a caller displays. KPIs are always computed over the
unfiltered sections, so changing a filter never changes a KPI.
"""
import re
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from schemadx.models.drift import (
    ComparisonKPIs,
    DriftItem,
    DriftSection,
    DriftStatus,
    MigrationGap,
)
from schemadx.models.finding import SEVERITY_ORDER, Finding
from schemadx.models.metadata import MigrationRecord

SEARCH_SCOPES = ('table', 'column', 'index', 'constraint', 'migration')
SEVERITY_FILTERS = ('all', 'ERROR', 'WARN', 'INFO')

_SCOPED_QUERY = re.compile(r"^(%s):(.+)$" % '|'.join(SEARCH_SCOPES), re.IGNORECASE)


class DriftFilter(BaseModel):
    """Caller-owned display filter."""

    model_config = ConfigDict(frozen=True)

    only_differences: bool = False
    severity_filter: str = 'all'
    search_query: str = ''

    @field_validator('severity_filter', mode='before')
    @classmethod
    def _normalize_severity(cls, value):
        if value is None:
            return 'all'
        text = str(value).strip()
        normalized = 'all' if text.lower() == 'all' else text.upper()
        if normalized not in SEVERITY_FILTERS:
            raise ValueError(
                f"Unknown severity filter '{value}'. Expected one of: "
                f"{', '.join(SEVERITY_FILTERS)}"
            )
        return normalized


def parse_search_query(query: Optional[str]) -> Tuple[Optional[str], str]:
    """Split a query into an optional scope and the lower-cased search term.

    ``table:cart_item`` -> (``table``, ``cart_item``); ``cart`` -> (None, ``cart``).
    """
    if not query:
        return None, ''
    match = _SCOPED_QUERY.match(query)
    if match:
        return match.group(1).lower(), match.group(2).lower()
    return None, query.lower()


def _compile(term: str) -> re.Pattern:
    """Literal match, with ``*`` standing for any run of characters."""
    return re.compile('.*'.join(re.escape(part) for part in term.split('*')), re.IGNORECASE)


def matches_search(item: DriftItem, scope: Optional[str], term: str) -> bool:
    if not term:
        return True

    pattern = _compile(term)
    object_name = item.object_name.lower()
    message = item.message.lower()

    if scope == 'table':
        return bool(pattern.search(object_name.split('.')[0]))
    if scope == 'column':
        return item.object_type == 'column' and bool(pattern.search(object_name.split('.')[-1]))
    if scope == 'index':
        return item.category == 'Performance' and bool(pattern.search(object_name))
    if scope == 'constraint':
        return item.object_type == 'constraint' and bool(pattern.search(object_name))
    if scope == 'migration':
        return bool(pattern.search(message))
    return bool(pattern.search(object_name) or pattern.search(message))


def filter_drift_items(items: List[DriftItem],
                       drift_filter: Optional[DriftFilter] = None) -> List[DriftItem]:
    """Narrow drift items for display.

    Steps run in this order: only differences, severity, search.
    """
    drift_filter = drift_filter or DriftFilter()
    filtered = list(items)

    if drift_filter.only_differences:
        filtered = [i for i in filtered if i.status != DriftStatus.MATCH]

    if drift_filter.severity_filter != 'all':
        filtered = [i for i in filtered if i.severity.value == drift_filter.severity_filter]

    scope, term = parse_search_query(drift_filter.search_query)
    if term:
        filtered = [i for i in filtered if matches_search(i, scope, term)]

    return filtered


def filter_sections(sections: List[DriftSection],
                    drift_filter: Optional[DriftFilter] = None) -> List[DriftItem]:
    """Visible items across all available sections."""
    items = [
        item
        for section in sections if section.availability.available
        for item in section.drift_items
    ]
    return filter_drift_items(items, drift_filter)


def search_migrations(migrations: List[MigrationRecord],
                      search_query: Optional[str]) -> List[MigrationRecord]:
    """Narrow migration records by version, description or script.

    Queries scoped to anything other than ``migration:`` leave the list unchanged.
    """
    scope, term = parse_search_query(search_query)
    if not term or scope not in (None, 'migration'):
        return list(migrations)

    pattern = _compile(term)
    return [
        m for m in migrations
        if any(pattern.search(text) for text in (m.version or '', m.description, m.script or ''))
    ]


def sort_findings(findings: List[Finding]) -> List[Finding]:
    """ERROR before WARN before INFO; ties keep their emission order."""
    return sorted(findings, key=lambda f: SEVERITY_ORDER[f.severity])


def filter_findings(findings: List[Finding], severity_filter: str = 'all',
                    search_query: str = '') -> List[Finding]:
    """Apply the severity and search narrowing to single-table findings."""
    severity = DriftFilter(severity_filter=severity_filter).severity_filter
    filtered = list(findings)
    if severity != 'all':
        filtered = [f for f in filtered if f.severity.value == severity]

    _, term = parse_search_query(search_query)
    if term:
        pattern = _compile(term)
        filtered = [
            f for f in filtered
            if pattern.search(f.title) or pattern.search(f.description)
        ]
    return filtered


def compute_kpis(sections: List[DriftSection], migration_gap: MigrationGap) -> ComparisonKPIs:
    """Headline counts over the unfiltered comparison.

    Totals come from the section counts, which cover the full compared
    population even when match items were capped.
    """
    items = [item for section in sections for item in section.drift_items]

    compatibility_errors = sum(
        1 for i in items if i.category == 'Compatibility' and i.severity.value == 'ERROR'
    )
    performance_warnings = sum(
        1 for i in items if i.category == 'Performance' and i.status != DriftStatus.MATCH
    )
    missing_migrations = (
        len(migration_gap.missing_migrations) if migration_gap.detectable else 0
    )

    return ComparisonKPIs(
        compatibility_errors=compatibility_errors,
        performance_warnings=performance_warnings,
        missing_migrations=missing_migrations,
        has_critical_issues=compatibility_errors > 0 or missing_migrations > 0,
        total_matches=sum(s.match_count for s in sections),
        total_differences=sum(s.differ_count for s in sections),
        total_unknown=sum(s.unknown_count for s in sections)
    )

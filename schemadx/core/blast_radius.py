"""Likely symptoms of drift items."""
import re
from typing import List, Optional

from schemadx.models.drift import (
    RISK_ORDER,
    BlastRadiusItem,
    DriftItem,
    DriftSection,
    DriftStatus,
    RiskLevel,
)

INDEX_MISMATCH = "Index definition mismatch"
GENERIC_INDEX_SYMPTOM = "Different query execution plans between environments"

_METHOD = re.compile(r"\busing\s+(\w+)", re.IGNORECASE)
_WHERE = re.compile(r"\bwhere\b", re.IGNORECASE)

def _split(object_name: str):
    table, _, leaf = object_name.rpartition('.')
    return (table or object_name), leaf or object_name

def describe_index_difference(source_def: Optional[str], target_def: Optional[str]) -> str:
    """Name the most significant change between two index definitions."""
    if not source_def or not target_def:
        return "Definition differs"

    source_method = _METHOD.search(source_def)
    target_method = _METHOD.search(target_def)
    if source_method and target_method:
        s_method, t_method = source_method.group(1).lower(), target_method.group(1).lower()
        if s_method != t_method:
            return f"Method differs: {s_method} → {t_method}"

    source_unique = "UNIQUE" in source_def.upper()
    target_unique = "UNIQUE" in target_def.upper()
    if source_unique != target_unique:
        return "Uniqueness removed" if source_unique else "Uniqueness added"

    source_partial = bool(_WHERE.search(source_def))
    target_partial = bool(_WHERE.search(target_def))
    if source_partial != target_partial:
        return "Partial predicate removed" if source_partial else "Partial predicate added"
    if source_partial:
        return "Partial predicate differs"

    return "Definition differs"

def _compatibility_symptoms(item: DriftItem):
    if item.attribute == "exists":
        if not (item.source_value is True and item.target_value is False):
            return None
        table, leaf = _split(item.object_name)
        if item.object_type == "column":
            return "Missing column", "Column removed", [
                f'INSERT/UPDATE fails: column "{leaf}" does not exist',
                "SELECT fails if application queries this column",
                "Application errors: field mapping failures",
            ]
        if item.object_type == "constraint":
            return "Missing constraint", "Constraint removed", [
                f'Rows violating "{leaf}" are accepted on {table}',
                "ON CONFLICT clauses fail: no matching unique or exclusion constraint",
                "Duplicate or orphaned rows appear only in this environment",
            ]
        if item.object_type not in (None, "table"):
            return None
        return "Missing table", "Table removed", [
            f'INSERT/UPDATE/DELETE fails: relation "{table}" does not exist',
            "SELECT queries fail completely",
            "Application startup failures if table is accessed during initialization",
        ]

    if item.attribute == "data_type":
        return "Column type mismatch", f"Type changed: {item.source_value} → {item.target_value}", [
            "INSERT/UPDATE fails: column type mismatch errors",
            "Data truncation or precision loss",
            "Application type casting errors",
        ]

    if item.attribute == "is_nullable":
        if item.source_value is True and item.target_value is False:
            symptom = "INSERT/UPDATE with NULL values fails: NOT NULL constraint violation"
        else:
            symptom = "Unexpected NULL values may cause application logic errors"
        subtype = f"Nullable: {item.source_value} → {item.target_value}"
        return "Nullability mismatch", subtype, [symptom]

    return None

def _performance_symptoms(item: DriftItem):
    if item.attribute == "exists" and item.source_value is True and item.target_value is False:
        table, _ = _split(item.object_name)
        symptoms = [
            f"Slow queries / table scans on {table}",
            "Query timeouts under load",
            "CPU spikes during peak usage",
        ]
        if item.risk_level == RiskLevel.HIGH:
            symptoms.append(
                "CRITICAL: This may be a unique or primary key index - data integrity at risk"
            )
        return "Missing index", "Index removed", symptoms

    if item.attribute == "definition":
        subtype = describe_index_difference(item.source_value, item.target_value)
        return INDEX_MISMATCH, subtype, [
            GENERIC_INDEX_SYMPTOM,
            "Inconsistent query performance",
        ]

    return None

def analyze_symptoms(item: DriftItem) -> Optional[BlastRadiusItem]:
    """Symptoms for one DIFFER item, or None when it has no known blast radius."""
    if item.status != DriftStatus.DIFFER:
        return None

    if item.category == "Compatibility":
        result = _compatibility_symptoms(item)
    elif item.category == "Performance":
        result = _performance_symptoms(item)
    else:
        result = None

    if result is None:
        return None

    drift_type, subtype, symptoms = result
    return BlastRadiusItem(
        object_name=item.object_name,
        drift_type=drift_type,
        drift_subtype=subtype,
        category=item.category,
        risk_level=item.risk_level or RiskLevel.MEDIUM,
        likely_symptoms=symptoms
    )

def _is_generic_index_mismatch(item: BlastRadiusItem) -> bool:
    return (
        item.drift_type == INDEX_MISMATCH
        and item.risk_level == RiskLevel.MEDIUM
        and GENERIC_INDEX_SYMPTOM in item.likely_symptoms
    )

def generate_blast_radius(sections: List[DriftSection]) -> List[BlastRadiusItem]:
    """Collect symptoms over available sections, grouping generic index mismatches.

    Returns:
        Items sorted by risk (High, Medium, Low) then drift type
    """
    items = []
    for section in sections:
        if not section.availability.available:
            continue
        for drift_item in section.drift_items:
            radius = analyze_symptoms(drift_item)
            if radius is not None:
                items.append(radius)

    unique = [i for i in items if not _is_generic_index_mismatch(i)]
    generic = [i for i in items if _is_generic_index_mismatch(i)]

    result = list(unique)
    if len(generic) > 1:
        result.append(BlastRadiusItem(
            object_name="Multiple indexes",
            drift_type="Index definition mismatches",
            drift_subtype=f"{len(generic)} indexes",
            category="Performance",
            risk_level=RiskLevel.MEDIUM,
            likely_symptoms=[
                "Inconsistent query performance between environments",
                "Different execution plans may cause timing differences",
            ],
            is_group_representative=True,
            group_count=len(generic)
        ))
    else:
        result.extend(generic)

    result.sort(key=lambda i: (RISK_ORDER.get(i.risk_level, 4), i.drift_type))
    return result

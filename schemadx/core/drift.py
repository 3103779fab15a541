"""Cross-environment drift classification."""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from schemadx.config.settings import DEFAULT_MAX_MATCH_ITEMS
from schemadx.core.access import CHECKED_PRIVILEGES
from schemadx.models.drift import (
    CapabilityStatus,
    DriftItem,
    DriftSection,
    DriftStatus,
    EnvironmentSnapshot,
    RiskLevel,
    SectionAvailability,
)
from schemadx.models.finding import Severity
from schemadx.models.metadata import Constraint, ConstraintType, TableMetadata

logger = logging.getLogger(__name__)


class DriftKind(str, Enum):
    """Attribute kinds the classifier knows how to grade."""

    TABLE_EXISTS = "table_exists"
    TABLE_COMMENT = "table_comment"
    COLUMN_EXISTS = "column_exists"
    COLUMN_TYPE = "column_type"
    COLUMN_NULLABLE = "column_nullable"
    COLUMN_DEFAULT = "column_default"
    COLUMN_COMMENT = "column_comment"
    CONSTRAINT_EXISTS = "constraint_exists"
    CONSTRAINT_TYPE = "constraint_type"
    INDEX_EXISTS = "index_exists"
    INDEX_DEFINITION = "index_definition"
    GRANT = "grant"


class DriftAttribute(BaseModel):
    """One environment's observation of an attribute.

    ``available`` is False when the value could not be retrieved at all
    (capability unavailable or permission denied). ``detail`` carries context
    used for grading, such as a constraint type or index uniqueness.
    """

    model_config = ConfigDict(frozen=True)

    value: Any = None
    available: bool = True
    reason: Optional[str] = None
    detail: Optional[str] = None


# kind -> (category, attribute, label)
_KIND_INFO: Dict[DriftKind, Tuple[str, str, str]] = {
    DriftKind.TABLE_EXISTS: ("Compatibility", "exists", "Table"),
    DriftKind.TABLE_COMMENT: ("Cosmetic", "comment", "Table"),
    DriftKind.COLUMN_EXISTS: ("Compatibility", "exists", "Column"),
    DriftKind.COLUMN_TYPE: ("Compatibility", "data_type", "Column"),
    DriftKind.COLUMN_NULLABLE: ("Compatibility", "is_nullable", "Column"),
    DriftKind.COLUMN_DEFAULT: ("Compatibility", "default", "Column"),
    DriftKind.COLUMN_COMMENT: ("Cosmetic", "comment", "Column"),
    DriftKind.CONSTRAINT_EXISTS: ("Compatibility", "exists", "Constraint"),
    DriftKind.CONSTRAINT_TYPE: ("Compatibility", "type", "Constraint"),
    DriftKind.INDEX_EXISTS: ("Performance", "exists", "Index"),
    DriftKind.INDEX_DEFINITION: ("Performance", "definition", "Index"),
    DriftKind.GRANT: ("Access", "granted", "Privilege"),
}

_Verdict = Tuple[Severity, Optional[RiskLevel], str]


def normalize_value(value: Any) -> Optional[str]:
    """Case-insensitive, trimmed comparison form. None stays None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _existence(label: str, obj: str, source: DriftAttribute, missing: _Verdict) -> _Verdict:
    if source.value:
        return missing
    return (Severity.WARN, RiskLevel.LOW,
            f"{label} '{obj}' exists in target but not in source")


def _grade_table_exists(obj, source, target):
    missing = (Severity.ERROR, RiskLevel.HIGH,
               f"Table '{obj}' exists in source but missing in target")
    return _existence("Table", obj, source, missing)


def _grade_column_exists(obj, source, target):
    missing = (Severity.ERROR, RiskLevel.HIGH,
               f"Column '{obj}' exists in source but missing in target")
    return _existence("Column", obj, source, missing)


def _grade_constraint_exists(obj, source, target):
    ctype = (source.detail or target.detail or "").upper()
    if ctype in ("PRIMARY KEY", "UNIQUE"):
        severity, risk = Severity.ERROR, RiskLevel.HIGH
    else:
        severity, risk = Severity.WARN, RiskLevel.MEDIUM
    missing = (severity, risk,
               f"Constraint '{obj}' ({ctype or 'unknown type'}) exists in source but "
               f"missing in target")
    return _existence("Constraint", obj, source, missing)


def _grade_constraint_type(obj, source, target):
    return (Severity.ERROR, RiskLevel.HIGH,
            f"Constraint '{obj}' type mismatch: {source.value} vs {target.value}")


def _grade_index_exists(obj, source, target):
    detail = (source.detail or "").upper()
    risk = RiskLevel.HIGH if ("UNIQUE" in detail or "PRIMARY" in detail) else RiskLevel.MEDIUM
    missing = (Severity.WARN, risk, f"Index '{obj}' exists in source but missing in target")
    return _existence("Index", obj, source, missing)


def _grade_grant(obj, source, target):
    if source.value:
        return (Severity.ERROR, None,
                f"Privilege '{obj}' granted in source but missing in target")
    return (Severity.WARN, None, f"Privilege '{obj}' granted in target but not in source")


def _mismatch(severity: Severity, risk: RiskLevel, what: str) -> Callable[..., _Verdict]:
    def grade(obj, source, target):
        return (severity, risk,
                f"Column '{obj}' {what} mismatch: {source.value} vs {target.value}")
    return grade


_GRADERS: Dict[DriftKind, Callable[..., _Verdict]] = {
    DriftKind.TABLE_EXISTS: _grade_table_exists,
    DriftKind.TABLE_COMMENT: lambda obj, s, t: (
        Severity.INFO, RiskLevel.LOW, f"Comment on table '{obj}' differs"),
    DriftKind.COLUMN_EXISTS: _grade_column_exists,
    DriftKind.COLUMN_TYPE: _mismatch(Severity.ERROR, RiskLevel.HIGH, "type"),
    DriftKind.COLUMN_NULLABLE: _mismatch(Severity.ERROR, RiskLevel.HIGH, "nullability"),
    DriftKind.COLUMN_DEFAULT: _mismatch(Severity.WARN, RiskLevel.LOW, "default"),
    DriftKind.COLUMN_COMMENT: lambda obj, s, t: (
        Severity.INFO, RiskLevel.LOW, f"Comment on column '{obj}' differs"),
    DriftKind.CONSTRAINT_EXISTS: _grade_constraint_exists,
    DriftKind.CONSTRAINT_TYPE: _grade_constraint_type,
    DriftKind.INDEX_EXISTS: _grade_index_exists,
    DriftKind.INDEX_DEFINITION: lambda obj, s, t: (
        Severity.WARN, RiskLevel.MEDIUM, f"Index '{obj}' definition differs"),
    DriftKind.GRANT: _grade_grant,
}


def classify_drift(source: DriftAttribute, target: DriftAttribute,
                   kind: DriftKind, object_name: str) -> DriftItem:
    """Grade one attribute of one object across two environments.

    Never raises: an attribute that could not be read on either side becomes
    an UNKNOWN item carrying the captured reason.
    """
    category, attribute, label = _KIND_INFO[kind]

    if not source.available or not target.available:
        reason = (source.reason if not source.available else target.reason) \
            or "capability unavailable"
        return DriftItem(
            category=category,
            object_name=object_name,
            attribute=attribute,
            object_type=label.lower(),
            source_value=source.value if source.available else None,
            target_value=target.value if target.available else None,
            status=DriftStatus.UNKNOWN,
            severity=Severity.WARN,
            message=f"Cannot compare {label.lower()} '{object_name}': {reason}"
        )

    if normalize_value(source.value) == normalize_value(target.value):
        if attribute == "exists":
            message = f"{label} '{object_name}' exists in both environments"
        else:
            message = f"{label} '{object_name}' {attribute} matches in both environments"
        return DriftItem(
            category=category,
            object_name=object_name,
            attribute=attribute,
            object_type=label.lower(),
            source_value=source.value,
            target_value=target.value,
            status=DriftStatus.MATCH,
            severity=Severity.INFO,
            message=message
        )

    severity, risk, message = _GRADERS[kind](object_name, source, target)
    return DriftItem(
        category=category,
        object_name=object_name,
        attribute=attribute,
        object_type=label.lower(),
        source_value=source.value,
        target_value=target.value,
        status=DriftStatus.DIFFER,
        severity=severity,
        risk_level=risk,
        message=message
    )


class _SectionTally:
    """Accumulates items while keeping population counts separate from the sample."""

    def __init__(self, max_match_items: int):
        self.max_match_items = max_match_items
        self.items: List[DriftItem] = []
        self.match_count = 0
        self.differ_count = 0
        self.unknown_count = 0

    def add(self, item: DriftItem) -> None:
        if item.status == DriftStatus.MATCH:
            if self.match_count < self.max_match_items:
                self.items.append(item)
            self.match_count += 1
        elif item.status == DriftStatus.DIFFER:
            self.items.append(item)
            self.differ_count += 1
        else:
            self.items.append(item)
            self.unknown_count += 1

    def section(self, name: str, description: str,
                availability: SectionAvailability) -> DriftSection:
        if self.match_count > self.max_match_items:
            logger.debug("Section %s: materialized %d of %d matches",
                         name, self.max_match_items, self.match_count)
        return DriftSection(
            section_name=name,
            description=description,
            availability=availability,
            drift_items=self.items,
            match_count=self.match_count,
            differ_count=self.differ_count,
            unknown_count=self.unknown_count
        )


def _unavailable_reason(source: CapabilityStatus, target: CapabilityStatus) -> Optional[str]:
    if not source.available:
        return source.message
    if not target.available:
        return target.message
    return None


def _unavailable_section(name: str, description: str, reason: Optional[str],
                         needed_privilege: str, impact: str) -> DriftSection:
    logger.warning("Drift section %s unavailable: %s", name, reason)
    return DriftSection(
        section_name=name,
        description=description,
        availability=SectionAvailability.create_unavailable(reason, needed_privilege, impact)
    )


def common_tables(source: EnvironmentSnapshot, target: EnvironmentSnapshot) -> List[str]:
    """Names of tables present on both sides, sorted."""
    target_names = set(target.table_map())
    return sorted(name for name in source.table_map() if name in target_names)


def compare_tables_section(source: EnvironmentSnapshot, target: EnvironmentSnapshot,
                           max_match_items: int = DEFAULT_MAX_MATCH_ITEMS) -> DriftSection:
    """Table existence in both environments."""
    name, description = "Tables", "Table existence and structure"
    reason = (
        _unavailable_reason(source.capabilities.connect, target.capabilities.connect)
        or _unavailable_reason(source.capabilities.tables, target.capabilities.tables)
    )
    if reason is not None:
        return _unavailable_section(
            name, description, reason,
            "read access to information_schema.tables",
            "Cannot detect missing or extra tables"
        )

    source_tables = source.table_map()
    target_tables = target.table_map()
    tally = _SectionTally(max_match_items)

    for table in sorted(source_tables):
        tally.add(classify_drift(
            DriftAttribute(value=True), DriftAttribute(value=table in target_tables),
            DriftKind.TABLE_EXISTS, table
        ))
        if table in target_tables:
            s_comment = source_tables[table].comment
            t_comment = target_tables[table].comment
            if normalize_value(s_comment) != normalize_value(t_comment):
                tally.add(classify_drift(
                    DriftAttribute(value=s_comment), DriftAttribute(value=t_comment),
                    DriftKind.TABLE_COMMENT, table
                ))

    for table in sorted(set(target_tables) - set(source_tables)):
        tally.add(classify_drift(
            DriftAttribute(value=False), DriftAttribute(value=True),
            DriftKind.TABLE_EXISTS, table
        ))

    return tally.section(name, description, SectionAvailability.create_available())


def _column_items(table: str, source: TableMetadata, target: TableMetadata) -> List[DriftItem]:
    """Per-column items: differences, or one aggregated match per column."""
    items = []
    source_cols = {c.name: c for c in source.columns}
    target_cols = {c.name: c for c in target.columns}
    ordered = [c.name for c in sorted(source.columns, key=lambda c: c.ordinal_position)]
    ordered += sorted(set(target_cols) - set(source_cols))

    for column in ordered:
        obj = f"{table}.{column}"
        s_col = source_cols.get(column)
        t_col = target_cols.get(column)
        if s_col is None or t_col is None:
            items.append(classify_drift(
                DriftAttribute(value=s_col is not None), DriftAttribute(value=t_col is not None),
                DriftKind.COLUMN_EXISTS, obj
            ))
            continue

        comparisons = [
            (DriftKind.COLUMN_TYPE, s_col.data_type, t_col.data_type),
            (DriftKind.COLUMN_NULLABLE, s_col.nullable, t_col.nullable),
            (DriftKind.COLUMN_DEFAULT, s_col.column_default, t_col.column_default),
            (DriftKind.COLUMN_COMMENT, s_col.comment, t_col.comment),
        ]
        differences = []
        for kind, s_value, t_value in comparisons:
            item = classify_drift(DriftAttribute(value=s_value), DriftAttribute(value=t_value),
                                  kind, obj)
            if item.status != DriftStatus.MATCH:
                differences.append(item)

        if differences:
            items.extend(differences)
        else:
            items.append(DriftItem(
                category="Compatibility",
                object_name=obj,
                attribute="all_attributes",
                object_type="column",
                source_value="matches",
                target_value="matches",
                status=DriftStatus.MATCH,
                severity=Severity.INFO,
                message=f"Column '{obj}' matches in both environments"
            ))
    return items


def compare_columns_section(source: EnvironmentSnapshot, target: EnvironmentSnapshot,
                            tables: List[str],
                            max_match_items: int = DEFAULT_MAX_MATCH_ITEMS) -> DriftSection:
    """Column existence, type, nullability, default and comment per common table."""
    name, description = "Columns", "Column definitions and types"
    reason = _unavailable_reason(source.capabilities.columns, target.capabilities.columns)
    if reason is not None:
        return _unavailable_section(
            name, description, reason,
            "read access to information_schema.columns",
            "Cannot detect column type mismatches or missing columns"
        )

    source_tables = source.table_map()
    target_tables = target.table_map()
    tally = _SectionTally(max_match_items)
    for table in tables:
        for item in _column_items(table, source_tables[table], target_tables[table]):
            tally.add(item)
    return tally.section(name, description, SectionAvailability.create_available())


def _constraint_key(constraint: Constraint) -> str:
    if constraint.name:
        return constraint.name
    return f"{constraint.type.value.lower()}({','.join(constraint.columns)})"


def _constraint_label(constraint: Constraint) -> str:
    if constraint.type == ConstraintType.OTHER and constraint.raw_type:
        return constraint.raw_type.upper()
    return constraint.type.value.replace('_', ' ')


def compare_constraints_section(source: EnvironmentSnapshot, target: EnvironmentSnapshot,
                                tables: List[str],
                                max_match_items: int = DEFAULT_MAX_MATCH_ITEMS) -> DriftSection:
    """Constraint existence and type per common table."""
    name, description = "Constraints", "Primary keys, foreign keys, unique constraints"
    reason = _unavailable_reason(source.capabilities.constraints,
                                 target.capabilities.constraints)
    if reason is not None:
        return _unavailable_section(
            name, description, reason,
            "read access to information_schema.table_constraints",
            "Cannot detect constraint mismatches"
        )

    source_tables = source.table_map()
    target_tables = target.table_map()
    tally = _SectionTally(max_match_items)
    for table in tables:
        s_map = {_constraint_key(c): _constraint_label(c) for c in source_tables[table].constraints}
        t_map = {_constraint_key(c): _constraint_label(c) for c in target_tables[table].constraints}
        for key in sorted(set(s_map) | set(t_map)):
            obj = f"{table}.{key}"
            s_type, t_type = s_map.get(key), t_map.get(key)
            if s_type is None or t_type is None:
                tally.add(classify_drift(
                    DriftAttribute(value=s_type is not None, detail=s_type),
                    DriftAttribute(value=t_type is not None, detail=t_type),
                    DriftKind.CONSTRAINT_EXISTS, obj
                ))
            else:
                tally.add(classify_drift(
                    DriftAttribute(value=s_type), DriftAttribute(value=t_type),
                    DriftKind.CONSTRAINT_TYPE, obj
                ))
    return tally.section(name, description, SectionAvailability.create_available())


def compare_indexes_section(source: EnvironmentSnapshot, target: EnvironmentSnapshot,
                            tables: List[str],
                            max_match_items: int = DEFAULT_MAX_MATCH_ITEMS) -> DriftSection:
    """Index existence and definition per common table."""
    name, description = "Indexes", "Table indexes and their definitions"
    reason = _unavailable_reason(source.capabilities.indexes, target.capabilities.indexes)
    if reason is not None:
        return _unavailable_section(
            name, description, reason,
            "read access to pg_catalog.pg_indexes",
            "Cannot detect index drift; performance issues may be undetectable"
        )

    source_tables = source.table_map()
    target_tables = target.table_map()
    tally = _SectionTally(max_match_items)
    for table in tables:
        s_map = {i.name: i for i in source_tables[table].indexes}
        t_map = {i.name: i for i in target_tables[table].indexes}
        for index in sorted(set(s_map) | set(t_map)):
            obj = f"{table}.{index}"
            s_idx, t_idx = s_map.get(index), t_map.get(index)
            if s_idx is None or t_idx is None:
                detail = None
                if s_idx is not None:
                    detail = "PRIMARY" if s_idx.primary else ("UNIQUE" if s_idx.unique else None)
                tally.add(classify_drift(
                    DriftAttribute(value=s_idx is not None, detail=detail),
                    DriftAttribute(value=t_idx is not None),
                    DriftKind.INDEX_EXISTS, obj
                ))
            else:
                tally.add(classify_drift(
                    DriftAttribute(value=s_idx.signature()),
                    DriftAttribute(value=t_idx.signature()),
                    DriftKind.INDEX_DEFINITION, obj
                ))
    return tally.section(name, description, SectionAvailability.create_available())


def _privilege_order(privileges) -> List[str]:
    known = [p for p in CHECKED_PRIVILEGES if p in privileges]
    return known + sorted(p for p in privileges if p not in CHECKED_PRIVILEGES)


def compare_grants_section(source: EnvironmentSnapshot, target: EnvironmentSnapshot,
                           tables: List[str],
                           max_match_items: int = DEFAULT_MAX_MATCH_ITEMS) -> DriftSection:
    """Granted privileges per common table.

    Tables whose privilege check was not captured on one side yield UNKNOWN
    items and mark the section partial.
    """
    name, description = "Grants", "Table privileges of the connected identities"
    reason = _unavailable_reason(source.capabilities.grants, target.capabilities.grants)
    if reason is not None:
        return _unavailable_section(
            name, description, reason,
            "read access to information_schema.role_table_grants",
            "Cannot detect privilege drift between environments"
        )

    source_tables = source.table_map()
    target_tables = target.table_map()
    tally = _SectionTally(max_match_items)
    unknown_tables = []

    for table in tables:
        s_priv = source_tables[table].privileges
        t_priv = target_tables[table].privileges
        if s_priv is None or t_priv is None:
            env = source.environment_name if s_priv is None else target.environment_name
            unknown_tables.append(table)
            tally.add(classify_drift(
                DriftAttribute(available=s_priv is not None,
                               reason=f"privileges not captured in {env}"),
                DriftAttribute(available=t_priv is not None,
                               reason=f"privileges not captured in {env}"),
                DriftKind.GRANT, table
            ))
            continue

        granted = set(s_priv.granted_privileges) | set(t_priv.granted_privileges)
        for privilege in _privilege_order(granted):
            tally.add(classify_drift(
                DriftAttribute(value=s_priv.has(privilege)),
                DriftAttribute(value=t_priv.has(privilege)),
                DriftKind.GRANT, f"{table}.{privilege}"
            ))

    availability = SectionAvailability.create_available()
    if unknown_tables:
        availability = SectionAvailability.create_partial(
            f"Privileges unknown for: {', '.join(unknown_tables)}"
        )
    return tally.section(name, description, availability)

"""Table metadata value objects consumed by the diagnostic engine.

Every model is frozen: the engine builds new results per call and never mutates
its inputs. Field names are snake_case, camelCase aliases are accepted so that
payloads captured from introspection endpoints load unchanged.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

__all__ = [
    'Column',
    'Constraint',
    'ConstraintType',
    'Index',
    'MigrationProvenance',
    'MigrationRecord',
    'PrivilegeSet',
    'PrivilegeStatus',
    'TableMetadata',
    'ValidationError',
    'normalize_constraint_type',
]

VALUE_OBJECT_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class ConstraintType(str, Enum):
    """Relational constraint kinds."""

    PRIMARY_KEY = "PRIMARY_KEY"
    FOREIGN_KEY = "FOREIGN_KEY"
    UNIQUE = "UNIQUE"
    CHECK = "CHECK"
    OTHER = "OTHER"


class PrivilegeStatus(str, Enum):
    """Outcome of a privilege check."""

    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"


def normalize_constraint_type(raw: str) -> ConstraintType:
    """Map catalog spellings ('PRIMARY KEY', 'foreign_key', ...) onto ConstraintType.

    Unrecognised spellings map to OTHER.
    """
    key = raw.strip().upper().replace(" ", "_")
    if key in ConstraintType.__members__:
        return ConstraintType[key]
    return ConstraintType.OTHER


def _dedupe_upper(values: List[str]) -> List[str]:
    seen = []
    for value in values:
        value = value.strip().upper()
        if value and value not in seen:
            seen.append(value)
    return seen


class Column(BaseModel):
    """A single column of a table."""

    model_config = VALUE_OBJECT_CONFIG

    name: str
    ordinal_position: int = Field(ge=1)
    data_type: str
    nullable: bool
    column_default: Optional[str] = None
    comment: Optional[str] = None


class Constraint(BaseModel):
    """A table constraint. Unnamed constraints are legal."""

    model_config = VALUE_OBJECT_CONFIG

    name: Optional[str] = None
    type: ConstraintType
    raw_type: Optional[str] = None
    columns: List[str] = []
    definition: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_type(cls, data):
        if isinstance(data, dict):
            raw = data.get("type")
            if isinstance(raw, str) and not isinstance(raw, ConstraintType):
                data = dict(data)
                if "raw_type" not in data and "rawType" not in data:
                    data["raw_type"] = raw
                data["type"] = normalize_constraint_type(raw)
        return data

    @model_validator(mode="after")
    def _check_shape(self):
        keyed = (ConstraintType.FOREIGN_KEY, ConstraintType.PRIMARY_KEY, ConstraintType.UNIQUE)
        if self.type in keyed and not self.columns:
            raise ValueError(
                f"{self.type.value} constraint '{self.display_name}' must reference "
                f"at least one column"
            )
        return self

    @property
    def display_name(self) -> str:
        """Constraint name, or 'unnamed'."""
        return self.name or "unnamed"


class Index(BaseModel):
    """A table index."""

    model_config = VALUE_OBJECT_CONFIG

    name: str
    columns: List[str] = []
    primary: bool = False
    unique: bool = False
    access_method: str = "btree"
    definition: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self):
        if self.primary and not self.unique:
            raise ValueError(f"Index '{self.name}' is primary but not unique")
        return self

    def signature(self) -> str:
        """Comparable definition; the catalog definition when one was captured."""
        if self.definition:
            return self.definition
        prefix = "UNIQUE INDEX" if self.unique else "INDEX"
        return f"{prefix} USING {self.access_method} ({', '.join(self.columns)})"


class PrivilegeSet(BaseModel):
    """Privileges the connected identity holds on a table."""

    model_config = VALUE_OBJECT_CONFIG

    granted_privileges: List[str] = []
    missing_privileges: List[str] = []
    owner: str = ""
    current_user: str = ""
    status: PrivilegeStatus = PrivilegeStatus.PASS
    message: Optional[str] = None

    @field_validator("granted_privileges", "missing_privileges")
    @classmethod
    def _normalize_privileges(cls, values: List[str]) -> List[str]:
        return _dedupe_upper(values)

    @model_validator(mode="after")
    def _check_disjoint(self):
        overlap = [p for p in self.granted_privileges if p in self.missing_privileges]
        if overlap:
            raise ValueError(
                f"Privileges cannot be both granted and missing: {', '.join(overlap)}"
            )
        return self

    def has(self, privilege: str) -> bool:
        """Return True when the privilege is granted."""
        return privilege.upper() in self.granted_privileges


class MigrationProvenance(BaseModel):
    """The migration that created or last altered a table."""

    model_config = VALUE_OBJECT_CONFIG

    version: str
    description: str
    installed_by: str
    installed_on: datetime


class MigrationRecord(BaseModel):
    """One row of a migration history table."""

    model_config = VALUE_OBJECT_CONFIG

    installed_rank: int
    version: Optional[str] = None
    description: str = ""
    script: Optional[str] = None
    installed_by: str = ""
    installed_on: Optional[datetime] = None
    success: bool = True


class TableMetadata(BaseModel):
    """Everything known about one table for a single diagnostic pass."""

    model_config = VALUE_OBJECT_CONFIG

    schema_name: str = Field(alias="schema")
    table_name: str = Field(alias="table")
    owner: str = ""
    current_user: str = ""
    comment: Optional[str] = None
    columns: List[Column] = []
    constraints: List[Constraint] = []
    indexes: List[Index] = []
    privileges: Optional[PrivilegeSet] = None
    provenance: Optional[MigrationProvenance] = None

    @model_validator(mode="after")
    def _check_ordinals(self):
        positions = [c.ordinal_position for c in self.columns]
        duplicates = sorted({p for p in positions if positions.count(p) > 1})
        if duplicates:
            raise ValueError(
                f"Duplicate ordinal positions in {self.qualified_name}: "
                f"{', '.join(str(p) for p in duplicates)}"
            )
        return self

    @property
    def qualified_name(self) -> str:
        """schema.table"""
        return f"{self.schema_name}.{self.table_name}"

    def constraints_of(self, constraint_type: ConstraintType) -> List[Constraint]:
        """Constraints of one type, in declaration order."""
        return [c for c in self.constraints if c.type == constraint_type]

    @property
    def foreign_keys(self) -> List[Constraint]:
        """Foreign key constraints."""
        return self.constraints_of(ConstraintType.FOREIGN_KEY)

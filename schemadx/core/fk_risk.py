"""Foreign key risk classification."""
import logging
from typing import List, Optional

from schemadx.config.settings import RiskVocabulary
from schemadx.core.cascade import DEFAULT_INSPECTOR, CascadeInspector
from schemadx.models.finding import ForeignKeyRisk, RiskTier
from schemadx.models.metadata import Constraint, TableMetadata

logger = logging.getLogger(__name__)

DEFAULT_VOCABULARY = RiskVocabulary()


def classify_foreign_key_risk(
    constraint: Constraint,
    schema: str,
    table: str,
    vocabulary: Optional[RiskVocabulary] = None,
    inspector: Optional[CascadeInspector] = None
) -> RiskTier:
    """Assign a risk tier to one foreign key. First matching rule wins.

    1. No ON DELETE/UPDATE CASCADE -> low
    2. Cascading and self-referencing -> critical
    3. Cascading, the table name contains a root entity and a FK column
       contains the same entity -> high
    4. Any other cascade -> moderate
    """
    vocabulary = vocabulary or DEFAULT_VOCABULARY
    inspector = inspector or DEFAULT_INSPECTOR

    if not inspector.is_cascading(constraint):
        return RiskTier.LOW

    if inspector.is_self_reference(constraint, schema, table):
        return RiskTier.CRITICAL

    table_lower = table.lower()
    for entity in vocabulary.root_entities:
        token = entity.lower()
        if token in table_lower and any(token in col.lower() for col in constraint.columns):
            return RiskTier.HIGH

    return RiskTier.MODERATE


def assess_foreign_keys(
    meta: TableMetadata,
    vocabulary: Optional[RiskVocabulary] = None,
    inspector: Optional[CascadeInspector] = None
) -> List[ForeignKeyRisk]:
    """Classify every foreign key of a table, in declaration order."""
    inspector = inspector or DEFAULT_INSPECTOR
    results = []
    for fk in meta.foreign_keys:
        tier = classify_foreign_key_risk(
            fk, meta.schema_name, meta.table_name, vocabulary, inspector
        )
        logger.debug("FK %s on %s classified as %s", fk.display_name, meta.qualified_name, tier.value)
        results.append(ForeignKeyRisk(
            constraint_name=fk.display_name,
            columns=list(fk.columns),
            tier=tier,
            cascading=inspector.is_cascading(fk),
            self_referencing=inspector.is_self_reference(fk, meta.schema_name, meta.table_name),
            definition=fk.definition
        ))
    return results

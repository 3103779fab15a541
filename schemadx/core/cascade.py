"""Cascade and self-reference detection on foreign key definitions."""
import re
from abc import ABC, abstractmethod
from typing import Optional

from schemadx.models.metadata import Constraint

_WHITESPACE = re.compile(r'\s+')
_CASCADE_MARKERS = ('on delete cascade', 'on update cascade')
_DELETE_RULE = re.compile(r'on delete (cascade|set null|set default)')


class CascadeInspector(ABC):
    """Answers the questions the classifiers ask about a foreign key.

    Classifiers only consume the answers, so a real DDL parser can replace
    the default substring heuristics without touching them.
    """

    @abstractmethod
    def is_cascading(self, constraint: Constraint) -> bool:
        """True when deletes or updates on the parent propagate to this table."""

    @abstractmethod
    def references(self, constraint: Constraint, schema: str, table: str) -> bool:
        """True when the foreign key points at ``schema.table``."""

    def is_self_reference(self, constraint: Constraint, schema: str, table: str) -> bool:
        """True when the foreign key points back at its own table."""
        return self.references(constraint, schema, table)

    def delete_rule(self, constraint: Constraint) -> Optional[str]:
        """Action a parent delete triggers here: CASCADE, SET NULL, SET DEFAULT or None."""
        return "CASCADE" if self.is_cascading(constraint) else None


class SubstringCascadeInspector(CascadeInspector):
    """Case-insensitive substring matching on the constraint definition.

    This is a heuristic, not a parser: a definition that mentions
    ``on delete cascade`` inside a comment or quoted identifier is still
    reported as cascading. A missing definition means no cascade.
    """

    @staticmethod
    def _normalize(definition) -> str:
        if not definition:
            return ""
        return _WHITESPACE.sub(' ', definition).lower()

    def is_cascading(self, constraint: Constraint) -> bool:
        text = self._normalize(constraint.definition)
        return any(marker in text for marker in _CASCADE_MARKERS)

    def references(self, constraint: Constraint, schema: str, table: str) -> bool:
        text = self._normalize(constraint.definition)
        if not text or not table:
            return False

        if f"references {schema.lower()}.{table.lower()}" in text:
            return True

        # Unqualified target, as catalogs print it for tables on the search path
        pattern = re.compile(
            r'references\s+"?' + re.escape(table.lower()) + r'"?(?:\s|\(|$)'
        )
        return bool(pattern.search(text))

    def delete_rule(self, constraint: Constraint) -> Optional[str]:
        match = _DELETE_RULE.search(self._normalize(constraint.definition))
        return match.group(1).upper() if match else None


DEFAULT_INSPECTOR = SubstringCascadeInspector()

"""
Rule Loader - Rule-Set Construction from Configuration

Turns a block of validation settings into an immutable RuleSet.

## Configuration Shape

A rule-set block maps field names to the rules active for that field. Each
rule is a `ruleName: parameter` pair; order is preserved:

```yaml
username:
  required: 1
  uniqueInDb: 1
  min: 3
password:
  required: 1
  mustInclude: number,uppercase
  sameAs: password_repeat
```

## How It Works

1. The block is checked against RULE_SET_SCHEMA (jsonschema) - fields must map
   to mappings of scalar (or list-of-scalar) parameters. A malformed block raises ValueError.
2. Every rule name is canonicalized (legacy aliases such as `uniqueInDb`
   become `uniqueDb`).
3. Unknown rule names are dropped with a warning. They are no-ops, never errors.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple

from jsonschema import ValidationError, validate

from .rules import canonical_rule_name

logger = logging.getLogger(__name__)

RULE_SET_SCHEMA = {
    "type": "object",
    "additionalProperties": {
        "type": ["object", "null"],
        "additionalProperties": {
            "type": ["string", "number", "boolean", "null", "array"],
            "items": {"type": ["string", "number"]},
        },
    },
}


class Rule(NamedTuple):
    """A named validation constraint with its configured parameter."""

    name: str
    param: Any = None


class RuleSet:
    """Ordered, read-only mapping of field name to the rules for that field."""

    def __init__(self, fields: Optional[Mapping[str, List[Rule]]] = None):
        self._fields: "OrderedDict[str, Tuple[Rule, ...]]" = OrderedDict(
            (field, tuple(rules)) for field, rules in (fields or {}).items()
        )

    def fields(self) -> List[str]:
        return list(self._fields.keys())

    def rules_for(self, field: str) -> Tuple[Rule, ...]:
        return self._fields.get(field, ())

    def is_empty(self) -> bool:
        return not self._fields

    def items(self) -> Iterator[Tuple[str, Tuple[Rule, ...]]]:
        return iter(self._fields.items())

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field: object) -> bool:
        return field in self._fields

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleSet):
            return NotImplemented
        return list(self._fields.items()) == list(other._fields.items())

    def __repr__(self) -> str:
        return f"RuleSet({dict(self._fields)!r})"


class RuleLoader:
    """Builds RuleSet instances from validation settings blocks"""

    def load_rule_set(self, settings: Optional[Mapping[str, Any]]) -> RuleSet:
        """
        Load a rule-set from a configuration block.

        Args:
            settings: Mapping of field name -> {rule name: parameter}.
                None or an empty mapping yields an empty RuleSet.

        Returns:
            Immutable RuleSet with canonical rule names

        Raises:
            ValueError: If the block does not have the expected structure
        """
        if not settings:
            return RuleSet()

        try:
            validate(instance=settings, schema=RULE_SET_SCHEMA)
        except ValidationError as e:
            error_path = " -> ".join(str(p) for p in e.path) if e.path else "root"
            raise ValueError(
                f"Invalid validation settings at {error_path}: {e.message}"
            ) from e

        fields: Dict[str, List[Rule]] = OrderedDict()
        for field, rule_config in settings.items():
            fields[field] = self._load_field_rules(field, rule_config or {})
        return RuleSet(fields)

    def _load_field_rules(self, field: str, rule_config: Mapping[str, Any]) -> List[Rule]:
        """Canonicalize and filter the rules configured for one field."""
        rules = []
        for name, param in rule_config.items():
            canonical = canonical_rule_name(name)
            if canonical is None:
                logger.warning(
                    "Ignoring unknown validation rule",
                    extra={"field": field, "rule": name},
                )
                continue
            rules.append(Rule(canonical, param))
        return rules

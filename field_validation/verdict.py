"""Validation verdicts for a single field and a whole submitted record."""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class FieldVerdict:
    """
    Outcome for one field.

    Attributes:
        field: Field name
        valid: False as soon as any rule failed
        failed_rules: Canonical names of the failed rules, in evaluation order
        errors: Message keys for the failed rules (e.g. 'validationErrorMin')
    """

    field: str
    valid: bool = True
    failed_rules: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add_failure(self, rule_name: str, error_key: str) -> None:
        self.valid = False
        self.failed_rules.append(rule_name)
        self.errors.append(error_key)


@dataclass
class RecordVerdict:
    """Outcome for a submitted record: one FieldVerdict per validated field."""

    fields: Dict[str, FieldVerdict] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return all(v.valid for v in self.fields.values())

    def failed_fields(self) -> List[str]:
        return [name for name, v in self.fields.items() if not v.valid]

    def errors(self) -> Dict[str, List[str]]:
        """Message keys per invalid field."""
        return {name: list(v.errors) for name, v in self.fields.items() if not v.valid}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "fields": {
                name: {
                    "valid": v.valid,
                    "failed_rules": list(v.failed_rules),
                    "errors": list(v.errors),
                }
                for name, v in self.fields.items()
            },
        }

    def __str__(self) -> str:
        if self.is_valid:
            return "Valid"
        return " | ".join(
            f"{name}: {', '.join(v.failed_rules)}"
            for name, v in self.fields.items()
            if not v.valid
        )

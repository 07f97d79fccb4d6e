import logging
from collections.abc import Mapping
from typing import Any, Optional

from .events import EventDispatcher, UniqueUserEvent
from .record_store import RecordStore, record_id
from .rule_loader import Rule, RuleSet
from .rules import (
    FLAG_PREDICATES,
    FLAG_RULES,
    PARAMETER_RULES,
    error_key,
    is_empty,
    is_flag_enabled,
    validate_same_as,
)
from .verdict import FieldVerdict, RecordVerdict

logger = logging.getLogger(__name__)

# Rules evaluated even when the field value is empty
ALWAYS_EVALUATED = frozenset(["required", "inList", "sameAs"])


class ValidationEngine:
    """Evaluates a rule-set against a submitted record, independent of transport"""

    def __init__(
        self,
        record_store: RecordStore,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        """
        Initialize validation engine.

        Args:
            record_store: Lookup used by the uniquePage and uniqueDb rules
            event_dispatcher: Receives UniqueUserEvent after each uniqueDb lookup
        """
        self.record_store = record_store
        self.event_dispatcher = event_dispatcher or EventDispatcher()

    def validate(
        self,
        record: Any,
        rule_set: RuleSet,
        existing_record: Optional[Any] = None,
    ) -> RecordVerdict:
        """
        Validate every field named in the rule-set.

        Args:
            record: Submitted values, a mapping or an object with attributes
            rule_set: Rules to apply per field
            existing_record: The stored user being edited, if any; it never
                conflicts with itself in uniqueness checks

        Returns:
            RecordVerdict with one FieldVerdict per field in the rule-set
        """
        verdict = RecordVerdict()
        for field, rules in rule_set.items():
            verdict.fields[field] = self.validate_field(
                record, field, rules, existing_record
            )

        if not verdict.is_valid:
            logger.debug(
                "Record failed validation",
                extra={"failed_fields": verdict.failed_fields()},
            )
        return verdict

    def validate_field(
        self,
        record: Any,
        field: str,
        rules,
        existing_record: Optional[Any] = None,
    ) -> FieldVerdict:
        """Apply the rules of one field; every rule runs, failures accumulate."""
        value = get_value(record, field)
        result = FieldVerdict(field)
        for rule in rules:
            if rule.name not in ALWAYS_EVALUATED and is_empty(value):
                continue
            if not self.evaluate_rule(rule, value, field, record, existing_record):
                result.add_failure(rule.name, error_key(rule.name))
                logger.debug(
                    "Rule failed",
                    extra={"field": field, "rule": rule.name, "param": rule.param},
                )
        return result

    def evaluate_rule(
        self,
        rule: Rule,
        value: Any,
        field: str,
        record: Any = None,
        existing_record: Optional[Any] = None,
    ) -> bool:
        """
        Evaluate a single rule against a value.

        Disabled flag rules and unknown rule names pass.
        """
        name, param = rule
        if name in FLAG_RULES and not is_flag_enabled(param):
            return True

        if name in FLAG_PREDICATES:
            return FLAG_PREDICATES[name](value)
        if name in PARAMETER_RULES:
            return PARAMETER_RULES[name](value, param)
        if name == "sameAs":
            return validate_same_as(value, get_value(record, param))
        if name == "uniquePage":
            return self.validate_unique_page(value, field, existing_record)
        if name == "uniqueDb":
            return self.validate_unique_db(value, field, existing_record)
        return True

    def validate_unique_page(
        self, value: Any, field: str, user: Optional[Any] = None
    ) -> bool:
        """No other record in the storage folders holds this value."""
        found = self.record_store.check_unique_in_scope(field, value, record_id(user))
        return found is None

    def validate_unique_db(
        self, value: Any, field: str, user: Optional[Any] = None
    ) -> bool:
        """
        No other record anywhere holds this value - unless a listener says otherwise.

        The lookup result is wrapped in a UniqueUserEvent and dispatched; the
        verdict on the event after all listeners ran is returned.
        """
        found = self.record_store.check_unique_globally(field, value, record_id(user))
        event = UniqueUserEvent(value, field, user, found is None)
        return self.event_dispatcher.dispatch(event).is_unique()


def get_value(record: Any, field: Optional[str]) -> Any:
    """Read a field from a mapping or an attribute from an object; None if missing."""
    if record is None or not isinstance(field, str):
        return None
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)

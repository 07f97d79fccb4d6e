"""
field-validation-lib: Declarative form field validation

This library validates submitted user-registration fields with:
- Rule-sets declared per controller and action in YAML settings
- Built-in rules (required, email, min, max, int, letters, unicodeLetters,
  uniquePage, uniqueDb, mustInclude, mustNotInclude, inList, sameAs, date)
- Request context resolution guarded by a plugin placement check
- A listener hook to override uniqueness verdicts

Example:
    from field_validation import RequestContext, ValidationService

    service = ValidationService()
    verdict = service.validate(request, record)
"""

from .api import ValidationService
from .context_resolver import ContextResolver, PluginNotAllowedError, RequestContext
from .events import EventDispatcher, UniqueUserEvent
from .record_store import HttpRecordStore, InMemoryRecordStore
from .plugin_registry import StaticPluginRegistry
from .rule_loader import Rule, RuleLoader, RuleSet
from .validation_engine import ValidationEngine
from .verdict import FieldVerdict, RecordVerdict

__version__ = "0.1.0"
__all__ = [
    "ValidationService",
    "ContextResolver",
    "PluginNotAllowedError",
    "RequestContext",
    "EventDispatcher",
    "UniqueUserEvent",
    "HttpRecordStore",
    "InMemoryRecordStore",
    "StaticPluginRegistry",
    "Rule",
    "RuleLoader",
    "RuleSet",
    "ValidationEngine",
    "FieldVerdict",
    "RecordVerdict",
]

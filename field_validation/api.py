"""
Public API for field-validation-lib

This is the "front door" - the main entry point for validating form submissions.
"""

import logging
import time
from typing import Any, Optional

from .config_loader import ConfigLoader
from .context_resolver import ContextResolver, RequestContext, ResolvedContext
from .events import EventDispatcher, Listener
from .plugin_registry import PluginRegistry, StaticPluginRegistry
from .record_store import HttpRecordStore, RecordStore
from .rule_loader import RuleSet
from .validation_engine import ValidationEngine
from .verdict import RecordVerdict

logger = logging.getLogger(__name__)


class ValidationService:
    """
    Main validation service class.

    Resolves the rule-set for a request and evaluates a submitted record
    against it.

    Auto-refresh: Validation settings are reloaded when older than
    config_cache_max_age_seconds (checked at most every CHECK_INTERVAL).

    Example:
        from field_validation import RequestContext, ValidationService

        service = ValidationService()
        request = RequestContext(body_params=form_data, page_id=1)
        verdict = service.validate(request, form_data["tx_femanager_registration"]["user"])
        if not verdict.is_valid:
            print(verdict.errors())
    """

    # Debounce interval: how often the staleness check runs (seconds)
    CHECK_INTERVAL = 300

    def __init__(
        self,
        local_config_path: Optional[str] = None,
        record_store: Optional[RecordStore] = None,
        plugin_registry: Optional[PluginRegistry] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        """
        Initialize validation service.

        Capabilities not passed in are built from configuration:
        the record store from the record_store block of local-config.yaml,
        the plugin registry from the plugin_placements block of the
        validation settings.

        Args:
            local_config_path: Path to local-config.yaml (bundled file if None)
            record_store: Uniqueness lookups
            plugin_registry: Plugin placement lookups
            event_dispatcher: Listeners for the uniqueDb policy hook

        Raises:
            ValueError: If the validation settings are invalid
            RuntimeError: If remote validation settings cannot be fetched
        """
        self._local_config_path = local_config_path
        self._record_store = record_store
        self._plugin_registry = plugin_registry
        self.event_dispatcher = event_dispatcher or EventDispatcher()
        self._initialize()

    def _initialize(self):
        """Internal initialization logic."""
        self.config_loader = ConfigLoader(self._local_config_path)
        # record_store comes from local-config.yaml, which reload_config() does not re-read
        self.record_store = self._record_store or HttpRecordStore(
            self.config_loader.get_record_store_config()
        )
        self._wire()

    def _wire(self):
        """Build resolver and engine from the current configuration."""
        self._max_age = self.config_loader.get_config_cache_max_age()

        self.plugin_registry = self._plugin_registry or StaticPluginRegistry(
            self.config_loader.get_plugin_placements()
        )

        self.resolver = ContextResolver(
            configuration=self.config_loader,
            plugin_registry=self.plugin_registry,
            plugin_prefix=self.config_loader.get_plugin_prefix(),
            extension_name=self.config_loader.get_extension_name(),
        )
        self.engine = ValidationEngine(self.record_store, self.event_dispatcher)

        self._last_check_time = time.time()

    def _check_and_reload_if_stale(self):
        """
        Check config freshness and reload if stale (debounced).

        Checks at most every CHECK_INTERVAL seconds.
        """
        now = time.time()
        if now - self._last_check_time < self.CHECK_INTERVAL:
            return
        self._last_check_time = now

        age = self.config_loader.get_business_config_age()
        if age and age > self._max_age:
            logger.info(
                f"Validation settings stale ({age:.0f}s > {self._max_age}s), reloading"
            )
            self.reload_config()

    def validate(
        self,
        request: RequestContext,
        record: Any,
        existing_record: Optional[Any] = None,
    ) -> RecordVerdict:
        """
        Validate a submitted record against the rule-set for the request.

        Args:
            request: Current request (parameters and page id)
            record: Submitted field values (mapping or object)
            existing_record: Stored user being edited, excluded from
                uniqueness conflicts

        Returns:
            RecordVerdict; valid when no rule failed

        Raises:
            PluginNotAllowedError: If the request's plugin is not placed on
                its page. Never reported as a validation failure.

        Example:
            verdict = service.validate(request, {"username": "jo"})
            verdict.fields["username"].failed_rules  # ['min']
        """
        rule_set = self.resolve_rule_set(request)
        return self.engine.validate(record, rule_set, existing_record)

    def resolve(self, request: RequestContext) -> ResolvedContext:
        """Resolve plugin, controller, action and rule-set for a request."""
        self._check_and_reload_if_stale()
        return self.resolver.resolve(request)

    def resolve_rule_set(self, request: RequestContext) -> RuleSet:
        return self.resolve(request).rule_set

    def add_unique_listener(self, listener: Listener) -> None:
        """Register a uniqueness policy listener (called after earlier ones)."""
        self.event_dispatcher.add_listener(listener)

    def reload_config(self):
        """
        Reload validation settings from source.

        Clears a cached remote copy, re-reads the validation settings and
        rebuilds resolver and engine. Listeners registered on the event
        dispatcher are kept.
        """
        self.config_loader.reload()
        self._wire()

    def get_config_age(self) -> Optional[float]:
        """Seconds since the validation settings were loaded."""
        return self.config_loader.get_business_config_age()

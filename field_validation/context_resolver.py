"""
Context Resolver - Picks the Rule-Set for an Inbound Request

A form submission carries its plugin namespace (e.g. `tx_femanager_registration`)
and a `__referrer` block naming the controller and action that rendered the
form. The resolver turns that into a rule-set from the validation settings:

    settings[<controller>][<validation name>]

## Resolution Steps

1. Collect request parameters (query merged with body, body wins) whose key
   starts with the plugin prefix. Non-frontend requests carry none.
2. The plugin name is the first `<prefix>_*` key. Without one there is nothing
   to validate against and an empty rule-set is returned.
3. Read `__referrer/@controller` and `__referrer/@action` from the plugin block.
4. Map the controller label through a fixed allow-list: `Edit` -> edit,
   `Invitation` -> invitation, anything else -> new. A submitted label can
   never select a rule-set outside these three.
5. Check that the plugin is actually placed on the current page. If not,
   PluginNotAllowedError is raised - this is an authorization failure and
   is never reported as a validation verdict.
6. Validation name is `validationEdit` for invitation/edit, `validation`
   otherwise.

Resolution is stateless: every call works only from the RequestContext passed in.
"""

import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Protocol, Tuple
from urllib.parse import parse_qsl

from .plugin_registry import PluginRegistry
from .rule_loader import RuleLoader, RuleSet

logger = logging.getLogger(__name__)

CONFIGURATION_TYPE_SETTINGS = "settings"

DEFAULT_PLUGIN_PREFIX = "tx_femanager"
DEFAULT_EXTENSION_NAME = "Femanager"

# Referrer controller label -> canonical controller name
ALLOWED_CONTROLLERS = {
    "Edit": "edit",
    "Invitation": "invitation",
}
DEFAULT_CONTROLLER = "new"


class PluginNotAllowedError(RuntimeError):
    """The plugin named by the request is not placed on the current page."""

    code = 1683551467

    def __init__(self, plugin_name: str, page_id: Any):
        super().__init__(f"PluginName is not allowed: {plugin_name} on page {page_id}")
        self.plugin_name = plugin_name
        self.page_id = page_id


class ConfigurationSource(Protocol):
    def get_configuration(self, kind: str, namespace: str) -> Mapping[str, Any]:
        ...


class RequestContext:
    """Explicit view of the current request: parameters and page."""

    def __init__(
        self,
        query_params: Optional[Mapping[str, Any]] = None,
        body_params: Optional[Mapping[str, Any]] = None,
        page_id: Any = 0,
        is_frontend: bool = True,
    ):
        self.query_params = dict(query_params or {})
        self.body_params = dict(body_params or {})
        self.page_id = page_id
        self.is_frontend = is_frontend

    def merged_params(self) -> Dict[str, Any]:
        """Query parameters merged with body parameters; empty unless frontend."""
        if not self.is_frontend:
            return {}
        return {**self.query_params, **self.body_params}

    @classmethod
    def from_query_strings(
        cls,
        query: str = "",
        body: str = "",
        page_id: Any = 0,
        is_frontend: bool = True,
    ) -> "RequestContext":
        """
        Build a context from url-encoded strings.

        Bracket keys are decoded into nested mappings, so
        `tx_femanager_edit[__referrer][@controller]=Edit` becomes
        {"tx_femanager_edit": {"__referrer": {"@controller": "Edit"}}}.
        """
        return cls(
            query_params=parse_nested_params(query),
            body_params=parse_nested_params(body),
            page_id=page_id,
            is_frontend=is_frontend,
        )

    def __repr__(self) -> str:
        return f"RequestContext(page_id={self.page_id!r}, is_frontend={self.is_frontend})"


def _split_key(key: str) -> Tuple[str, List[str]]:
    if "[" not in key or not key.endswith("]"):
        return key, []
    head, _, rest = key.partition("[")
    return head, rest[:-1].split("][")


def parse_nested_params(query: str) -> Dict[str, Any]:
    """Decode an url-encoded string with bracket keys into nested dicts/lists."""
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(query or "", keep_blank_values=True):
        head, path = _split_key(key)
        if not path:
            result[head] = value
            continue
        node = result
        segments = [head] + path
        for segment, nxt in zip(segments, segments[1:]):
            child = node.get(segment) if isinstance(node, dict) else None
            if nxt == "":
                if not isinstance(child, list):
                    child = []
            elif not isinstance(child, dict):
                child = {}
            if isinstance(node, list):
                node.append(child)
            else:
                node[segment] = child
            node = child
        last = segments[-1]
        if isinstance(node, list):
            node.append(value)
        else:
            node[last] = value
    return result


class ResolvedContext(NamedTuple):
    plugin_name: str
    controller_name: str
    action_name: str
    validation_name: str
    rule_set: RuleSet


class ContextResolver:
    """Maps a request to the rule-set configured for its controller and action"""

    def __init__(
        self,
        configuration: ConfigurationSource,
        plugin_registry: PluginRegistry,
        plugin_prefix: str = DEFAULT_PLUGIN_PREFIX,
        extension_name: str = DEFAULT_EXTENSION_NAME,
        rule_loader: Optional[RuleLoader] = None,
    ):
        self.configuration = configuration
        self.plugin_registry = plugin_registry
        self.plugin_prefix = plugin_prefix
        self.extension_name = extension_name
        self.rule_loader = rule_loader or RuleLoader()

    def plugin_variables(self, request: RequestContext) -> Dict[str, Any]:
        """Request parameters namespaced under the plugin prefix."""
        return {
            key: value
            for key, value in request.merged_params().items()
            if key.startswith(self.plugin_prefix)
        }

    def plugin_name(self, request: RequestContext) -> str:
        """First plugin namespace found in the request, or '' if there is none."""
        for key in self.plugin_variables(request):
            if key.startswith(self.plugin_prefix + "_"):
                return key
        return ""

    def _referrer(self, request: RequestContext, plugin_name: str) -> Mapping[str, Any]:
        block = self.plugin_variables(request).get(plugin_name)
        if not isinstance(block, Mapping):
            return {}
        referrer = block.get("__referrer")
        return referrer if isinstance(referrer, Mapping) else {}

    def action_name(self, request: RequestContext) -> str:
        plugin_name = self.plugin_name(request)
        action = self._referrer(request, plugin_name).get("@action", "")
        return action if isinstance(action, str) else ""

    def controller_name(self, request: RequestContext) -> str:
        """
        Canonical lowercase controller name for the request.

        Only 'new', 'edit' and 'invitation' can come out of this. The plugin
        placement is verified before the name is returned.

        Raises:
            PluginNotAllowedError: If the plugin is not placed on the current page
        """
        plugin_name = self.plugin_name(request)
        label = self._referrer(request, plugin_name).get("@controller", "")
        controller_name = DEFAULT_CONTROLLER
        if isinstance(label, str):
            controller_name = ALLOWED_CONTROLLERS.get(label, DEFAULT_CONTROLLER)
        self.check_allowed_plugin_name(plugin_name, request.page_id)
        return controller_name

    def validation_name(self, request: RequestContext) -> str:
        return self.validation_name_for(
            self.controller_name(request), self.action_name(request)
        )

    @staticmethod
    def validation_name_for(controller_name: str, action_name: str) -> str:
        """Settings block for a controller/action pair: invitation edits have their own."""
        if controller_name == "invitation" and action_name == "edit":
            return "validationEdit"
        return "validation"

    def controller_name_by_plugin(self, plugin_name: str) -> str:
        """Canonical controller name derived from the plugin namespace itself."""
        if plugin_name == f"{self.plugin_prefix}_edit":
            return "edit"
        if plugin_name == f"{self.plugin_prefix}_invitation":
            return "invitation"
        return DEFAULT_CONTROLLER

    def check_allowed_plugin_name(self, plugin_name: str, page_id: Any) -> None:
        if not self.plugin_registry.is_plugin_rendered_on_page(page_id, plugin_name):
            logger.warning(
                "Plugin not placed on page",
                extra={"plugin_name": plugin_name, "page_id": page_id},
            )
            raise PluginNotAllowedError(plugin_name, page_id)

    def resolve(self, request: RequestContext) -> ResolvedContext:
        """
        Resolve plugin, controller, action and the applicable rule-set.

        Returns:
            ResolvedContext; its rule_set is empty when the request carries
            no plugin namespace or the settings have no matching block

        Raises:
            PluginNotAllowedError: If the plugin is not placed on the current page
        """
        plugin_name = self.plugin_name(request)
        if plugin_name == "":
            logger.debug("No plugin namespace in request - nothing to validate")
            return ResolvedContext("", DEFAULT_CONTROLLER, "", "validation", RuleSet())

        controller_name = self.controller_name(request)
        action_name = self.action_name(request)
        validation_name = self.validation_name_for(controller_name, action_name)

        config = self.configuration.get_configuration(
            CONFIGURATION_TYPE_SETTINGS, self.extension_name
        ) or {}
        settings = (config.get(controller_name) or {}).get(validation_name)
        if settings is None:
            logger.warning(
                "No validation settings configured",
                extra={"controller": controller_name, "validation_name": validation_name},
            )
        rule_set = self.rule_loader.load_rule_set(settings)

        logger.debug(
            "Resolved validation context",
            extra={
                "plugin_name": plugin_name,
                "controller": controller_name,
                "action": action_name,
                "validation_name": validation_name,
                "fields": rule_set.fields(),
            },
        )
        return ResolvedContext(
            plugin_name, controller_name, action_name, validation_name, rule_set
        )

    def resolve_rule_set(self, request: RequestContext) -> RuleSet:
        return self.resolve(request).rule_set

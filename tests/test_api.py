"""
Tests for ValidationService API

End-to-end runs against the bundled local-config.yaml and validation-settings.yaml.
"""
import pytest

from field_validation import (
    InMemoryRecordStore,
    PluginNotAllowedError,
    RequestContext,
    ValidationService,
)


@pytest.fixture
def store():
    return InMemoryRecordStore(
        records=[{"uid": 7, "pid": 1, "username": "taken", "email": "taken@mydomain.org"}],
        storage_pids=[1],
    )


@pytest.fixture
def service(store):
    """Create a ValidationService instance for testing."""
    return ValidationService(record_store=store)


@pytest.fixture
def registration():
    """A registration submission that satisfies every configured rule."""
    return {
        "username": "newuser",
        "email": "newuser@mydomain.org",
        "password": "Secret123",
        "password_repeat": "Secret123",
        "first_name": "Zoë",
        "date_of_birth": "29.02.2000",
        "gender": "1",
    }


def registration_request(user, controller="New", action="new", page_id=1):
    return RequestContext(
        body_params={
            "tx_femanager_registration": {
                "__referrer": {"@controller": controller, "@action": action},
                "user": user,
            }
        },
        page_id=page_id,
    )


class TestInitialization:
    """Test ValidationService initialization."""

    def test_create_service(self):
        """Service can be created from the bundled configuration."""
        service = ValidationService()
        assert service.engine is not None
        assert service.resolver is not None
        assert service.config_loader is not None

    def test_default_record_store_is_disabled_http_store(self):
        service = ValidationService()
        assert service.record_store.enabled is False

    def test_injected_record_store_is_used(self, service, store):
        assert service.record_store is store
        assert service.engine.record_store is store


class TestValidate:
    """Test validate() method."""

    def test_valid_registration(self, service, registration):
        verdict = service.validate(registration_request(registration), registration)
        assert verdict.is_valid, str(verdict)

    def test_invalid_registration(self, service, registration):
        registration.update({
            "username": "taken",
            "password": "secret",
            "password_repeat": "different",
            "date_of_birth": "29.02.2001",
            "gender": "5",
        })

        verdict = service.validate(registration_request(registration), registration)

        assert not verdict.is_valid
        assert verdict.fields["username"].failed_rules == ["uniqueDb"]
        assert verdict.fields["password"].failed_rules == ["min", "mustInclude"]
        assert verdict.fields["password_repeat"].failed_rules == ["sameAs"]
        assert verdict.fields["date_of_birth"].failed_rules == ["date"]
        assert verdict.fields["gender"].failed_rules == ["inList"]
        assert verdict.fields["email"].valid

    def test_missing_required_fields(self, service):
        verdict = service.validate(registration_request({}), {})

        assert verdict.errors()["username"] == ["validationErrorRequired"]
        assert verdict.errors()["email"] == ["validationErrorRequired"]
        assert "first_name" not in verdict.errors()

    def test_edit_excludes_existing_user(self, service):
        """A user keeping their own email on the edit form is valid."""
        request = RequestContext(
            body_params={"tx_femanager_edit": {"__referrer": {"@controller": "Edit"}}},
            page_id=2,
        )
        existing = {"uid": 7, "email": "taken@mydomain.org"}

        verdict = service.validate(request, {"email": "taken@mydomain.org"}, existing)

        assert verdict.is_valid
        assert list(verdict.fields) == ["email", "first_name"]

    def test_invitation_edit_uses_validation_edit(self, service):
        request = RequestContext(
            body_params={
                "tx_femanager_invitation": {
                    "__referrer": {"@controller": "Invitation", "@action": "edit"}
                }
            },
            page_id=3,
        )

        verdict = service.validate(request, {"password": "short", "password_repeat": "short"})

        assert list(verdict.fields) == ["password", "password_repeat"]
        assert verdict.fields["password"].failed_rules == ["min"]

    def test_plugin_not_on_page_is_fatal(self, service, registration):
        """A mismatched page raises instead of producing a verdict."""
        with pytest.raises(PluginNotAllowedError):
            service.validate(registration_request(registration, page_id=2), registration)

    def test_controller_label_cannot_select_other_rule_set(self, service):
        """Claiming 'Admin' falls back to the registration rules."""
        rule_set = service.resolve_rule_set(registration_request({}, controller="Admin"))
        assert "username" in rule_set
        assert "password" in rule_set


class TestUniqueListener:
    """Test add_unique_listener()."""

    def test_listener_overrides_lookup(self, service, registration):
        def block_domain(event):
            if event.field == "email" and event.value.endswith("@mydomain.org"):
                event.set_unique(False)

        service.add_unique_listener(block_domain)

        verdict = service.validate(registration_request(registration), registration)

        assert verdict.fields["email"].failed_rules == ["uniqueDb"]

    def test_listener_survives_reload(self, service, registration):
        service.add_unique_listener(lambda event: event.set_unique(False))
        service.reload_config()

        verdict = service.validate(registration_request(registration), registration)

        assert verdict.fields["username"].failed_rules == ["uniqueDb"]


class TestReload:
    """Test reload_config() and the staleness check."""

    def test_reload_resets_age(self, service):
        service.config_loader.business_config_loaded_at -= 100
        assert service.get_config_age() >= 100

        service.reload_config()

        assert service.get_config_age() < 100

    def test_reload_keeps_configured_record_store(self):
        """The HTTP record store and its session are built once, not per reload."""
        service = ValidationService()
        record_store = service.record_store
        session = record_store.session

        service.reload_config()

        assert service.record_store is record_store
        assert service.record_store.session is session
        assert service.engine.record_store is record_store

    def test_stale_config_reloaded_on_resolve(self, service, monkeypatch, registration):
        calls = []
        monkeypatch.setattr(service, "reload_config", lambda: calls.append(True))
        service._last_check_time -= service.CHECK_INTERVAL + 1
        service.config_loader.business_config_loaded_at -= service._max_age + 1

        service.validate(registration_request(registration), registration)

        assert calls == [True]

    def test_fresh_config_not_reloaded(self, service, monkeypatch, registration):
        calls = []
        monkeypatch.setattr(service, "reload_config", lambda: calls.append(True))
        service._last_check_time -= service.CHECK_INTERVAL + 1

        service.validate(registration_request(registration), registration)

        assert calls == []

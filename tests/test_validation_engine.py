"""
Tests for ValidationEngine

Covers per-field evaluation, empty-value handling, uniqueness lookups and
the uniqueness listener hook.
"""
import pytest

from field_validation.events import EventDispatcher, UniqueUserEvent
from field_validation.record_store import InMemoryRecordStore
from field_validation.rule_loader import Rule, RuleLoader, RuleSet
from field_validation.validation_engine import ValidationEngine, get_value


@pytest.fixture
def store():
    return InMemoryRecordStore(
        records=[
            {"uid": 1, "pid": 10, "username": "alice", "email": "alice@mydomain.org"},
            {"uid": 2, "pid": 20, "username": "bob", "email": "bob@mydomain.org"},
            {"uid": 3, "pid": 10, "username": "gone", "deleted": 1},
        ],
        storage_pids=[10],
    )


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def engine(store, dispatcher):
    return ValidationEngine(store, dispatcher)


def rules(settings):
    return RuleLoader().load_rule_set(settings)


class TestValidate:
    """Test ValidationEngine.validate()."""

    def test_valid_record(self, engine):
        rule_set = rules({
            "username": {"required": 1, "min": 3, "uniqueDb": 1},
            "email": {"required": 1, "email": 1},
        })

        verdict = engine.validate({"username": "carol", "email": "carol@mydomain.org"}, rule_set)

        assert verdict.is_valid
        assert set(verdict.fields) == {"username", "email"}

    def test_failed_rules_are_collected_per_field(self, engine):
        """Every rule runs; all failures are reported in order."""
        rule_set = rules({"password": {"min": 8, "mustInclude": "number,uppercase"}})

        verdict = engine.validate({"password": "abc"}, rule_set)

        field = verdict.fields["password"]
        assert field.valid is False
        assert field.failed_rules == ["min", "mustInclude"]
        assert field.errors == ["validationErrorMin", "validationErrorMustInclude"]
        assert verdict.failed_fields() == ["password"]
        assert verdict.is_valid is False

    def test_required_runs_on_empty_value(self, engine):
        verdict = engine.validate({"username": ""}, rules({"username": {"required": 1, "min": 3}}))
        assert verdict.fields["username"].failed_rules == ["required"]

    def test_optional_rules_skip_empty_values(self, engine):
        """An empty optional field does not fail min, email or date checks."""
        rule_set = rules({
            "nickname": {"min": 3},
            "email": {"email": 1},
            "date_of_birth": {"date": "d.m.Y"},
        })

        verdict = engine.validate({"nickname": "", "email": None}, rule_set)

        assert verdict.is_valid

    def test_disabled_flag_rule(self, engine):
        """A flag rule set to 0 is switched off."""
        verdict = engine.validate({"username": ""}, rules({"username": {"required": "0"}}))
        assert verdict.is_valid

    def test_same_as_compares_other_field(self, engine):
        rule_set = rules({"password_repeat": {"sameAs": "password"}})

        good = engine.validate({"password": "Secret1", "password_repeat": "Secret1"}, rule_set)
        bad = engine.validate({"password": "Secret1", "password_repeat": "secret1"}, rule_set)

        assert good.is_valid
        assert bad.fields["password_repeat"].failed_rules == ["sameAs"]

    def test_same_as_runs_on_empty_value(self, engine):
        """An empty repeat field does not match a filled password."""
        rule_set = rules({"password_repeat": {"sameAs": "password"}})
        verdict = engine.validate({"password": "Secret1", "password_repeat": ""}, rule_set)
        assert not verdict.is_valid

    def test_in_list_runs_on_empty_value(self, engine):
        verdict = engine.validate({"gender": ""}, rules({"gender": {"inList": "0,1,2"}}))
        assert verdict.is_valid

    def test_malformed_parameter_fails_without_raising(self, engine):
        rule_set = rules({"birthday": {"date": "Y-m-d"}, "username": {"min": "lots"}})
        verdict = engine.validate({"birthday": "2024-01-01", "username": "carol"}, rule_set)
        assert verdict.fields["birthday"].failed_rules == ["date"]
        assert verdict.fields["username"].failed_rules == ["min"]

    def test_unknown_rule_in_rule_set_passes(self, engine):
        """Rules unknown to the engine are no-ops."""
        rule_set = RuleSet({"username": [Rule("captcha", 1)]})
        assert engine.validate({"username": "x"}, rule_set).is_valid

    def test_object_record(self, engine):
        """Values are read from attributes when the record is not a mapping."""

        class User:
            username = "ab"

        verdict = engine.validate(User(), rules({"username": {"min": 3}}))
        assert verdict.fields["username"].failed_rules == ["min"]

    def test_empty_rule_set(self, engine):
        verdict = engine.validate({"username": ""}, RuleSet())
        assert verdict.is_valid
        assert verdict.fields == {}

    def test_verdict_serialization(self, engine):
        verdict = engine.validate({"username": "ab"}, rules({"username": {"min": 3}}))

        assert verdict.to_dict() == {
            "valid": False,
            "fields": {
                "username": {
                    "valid": False,
                    "failed_rules": ["min"],
                    "errors": ["validationErrorMin"],
                }
            },
        }
        assert verdict.errors() == {"username": ["validationErrorMin"]}
        assert str(verdict) == "username: min"


class TestUniqueness:
    """Test uniquePage and uniqueDb rules."""

    def test_unique_db_conflict(self, engine):
        verdict = engine.validate({"username": "bob"}, rules({"username": {"uniqueDb": 1}}))
        assert verdict.fields["username"].errors == ["validationErrorUniqueDb"]

    def test_unique_db_excludes_existing_record(self, engine):
        """Editing a user does not conflict with the user's own record."""
        verdict = engine.validate(
            {"username": "bob"},
            rules({"username": {"uniqueDb": 1}}),
            existing_record={"uid": 2, "username": "bob"},
        )
        assert verdict.is_valid

    def test_deleted_records_do_not_conflict(self, engine):
        verdict = engine.validate({"username": "gone"}, rules({"username": {"uniqueInDb": 1}}))
        assert verdict.is_valid

    def test_unique_page_is_scoped(self, engine):
        """bob lives outside the storage folder, alice inside."""
        rule_set = rules({"username": {"uniqueInPage": 1}})

        assert engine.validate({"username": "bob"}, rule_set).is_valid
        assert not engine.validate({"username": "alice"}, rule_set).is_valid

    def test_unique_page_does_not_dispatch_event(self, engine, dispatcher):
        seen = []
        dispatcher.add_listener(seen.append)
        engine.validate({"username": "alice"}, rules({"username": {"uniquePage": 1}}))
        assert seen == []


class TestUniqueListener:
    """Test the uniqueness listener hook."""

    def test_listener_receives_event(self, engine, dispatcher):
        seen = []
        dispatcher.add_listener(seen.append)
        existing = {"uid": 1}

        engine.validate({"email": "new@mydomain.org"}, rules({"email": {"uniqueDb": 1}}), existing)

        assert len(seen) == 1
        event = seen[0]
        assert isinstance(event, UniqueUserEvent)
        assert event.value == "new@mydomain.org"
        assert event.field == "email"
        assert event.user is existing
        assert event.is_unique() is True

    def test_listener_can_reject_unique_value(self, engine, dispatcher):
        """The listener verdict wins even when the lookup found no conflict."""

        def reserved(event):
            if event.value == "admin":
                event.set_unique(False)

        dispatcher.add_listener(reserved)

        verdict = engine.validate({"username": "admin"}, rules({"username": {"uniqueDb": 1}}))

        assert verdict.fields["username"].failed_rules == ["uniqueDb"]

    def test_listener_can_accept_conflicting_value(self, engine, dispatcher):
        dispatcher.add_listener(lambda event: event.set_unique(True))
        verdict = engine.validate({"username": "bob"}, rules({"username": {"uniqueDb": 1}}))
        assert verdict.is_valid

    def test_listeners_run_in_registration_order(self, engine, dispatcher):
        order = []

        def first(event):
            order.append("first")
            event.set_unique(False)

        def second(event):
            order.append("second")
            event.set_unique(True)

        dispatcher.add_listener(first)
        dispatcher.add_listener(second)

        verdict = engine.validate({"username": "carol"}, rules({"username": {"uniqueDb": 1}}))

        assert order == ["first", "second"]
        assert verdict.is_valid

    def test_removed_listener_no_longer_called(self, engine, dispatcher):
        reject_all = lambda event: event.set_unique(False)
        dispatcher.add_listener(reject_all)
        dispatcher.remove_listener(reject_all)

        verdict = engine.validate({"username": "carol"}, rules({"username": {"uniqueDb": 1}}))

        assert dispatcher.listeners() == []
        assert verdict.is_valid

    def test_remove_unknown_listener_raises(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.remove_listener(lambda event: None)

    def test_listener_exception_propagates(self, engine, dispatcher):
        def broken(event):
            raise RuntimeError("directory down")

        dispatcher.add_listener(broken)
        with pytest.raises(RuntimeError, match="directory down"):
            engine.validate({"username": "carol"}, rules({"username": {"uniqueDb": 1}}))


class TestGetValue:
    """Test get_value()."""

    def test_mapping(self):
        assert get_value({"a": 1}, "a") == 1
        assert get_value({"a": 1}, "b") is None

    def test_object(self):
        class Record:
            a = 1

        assert get_value(Record(), "a") == 1
        assert get_value(Record(), "b") is None

    def test_missing_record_or_field(self):
        assert get_value(None, "a") is None
        assert get_value({"a": 1}, None) is None

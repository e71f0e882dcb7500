import pytest

from skillpath.config import load_settings
from skillpath.errors import NotFound, ValidationError
from skillpath.progress import (
    THREE_MODULES_BADGE,
    BadgeRule,
    default_badge_rules,
    evaluate_badges,
    mark_module_complete,
    update_resource_status,
)

SKILL_RULE = BadgeRule(badge="python-badge", required_module="py-101")
RULES = [BadgeRule(badge=THREE_MODULES_BADGE, min_completed=3), SKILL_RULE]


class CountingStore:
    """Wraps a DocumentStore and counts badge writes."""

    def __init__(self, store):
        self.store = store
        self.badge_writes = 0

    def add_completed_module(self, user_id, module_id):
        return self.store.add_completed_module(user_id, module_id)

    def move_resource(self, user_id, resource_id, add_to, remove_from=None):
        return self.store.move_resource(user_id, resource_id, add_to, remove_from)

    def add_badges(self, user_id, badges):
        self.badge_writes += 1
        return self.store.add_badges(user_id, badges)


def test_completion_is_idempotent(store, make_user) -> None:
    user = make_user()

    for _ in range(3):
        assert mark_module_complete(store, user.id, "m1", RULES) == []

    assert store.get_user(user.id).completed_modules == ["m1"]


def test_three_modules_badge_awarded_once(store, make_user) -> None:
    user = make_user()

    assert mark_module_complete(store, user.id, "m1", RULES) == []
    assert mark_module_complete(store, user.id, "m2", RULES) == []
    assert mark_module_complete(store, user.id, "m3", RULES) == [THREE_MODULES_BADGE]
    assert mark_module_complete(store, user.id, "m4", RULES) == []
    assert mark_module_complete(store, user.id, "m3", RULES) == []

    assert store.get_user(user.id).badges == [THREE_MODULES_BADGE]


def test_specific_module_badge(store, make_user) -> None:
    user = make_user()

    assert mark_module_complete(store, user.id, "py-101", RULES) == ["python-badge"]
    assert mark_module_complete(store, user.id, "py-101", RULES) == []


def test_both_badges_in_one_batched_write(store, make_user) -> None:
    user = make_user()
    counting = CountingStore(store)

    mark_module_complete(counting, user.id, "m1", RULES)
    mark_module_complete(counting, user.id, "m2", RULES)
    earned = mark_module_complete(counting, user.id, "py-101", RULES)

    assert earned == [THREE_MODULES_BADGE, "python-badge"]
    assert counting.badge_writes == 1
    assert store.get_user(user.id).badges == [THREE_MODULES_BADGE, "python-badge"]


def test_no_badge_write_when_nothing_earned(store, make_user) -> None:
    user = make_user()
    counting = CountingStore(store)

    mark_module_complete(counting, user.id, "m1", RULES)

    assert counting.badge_writes == 0


def test_mark_complete_for_unknown_user(store) -> None:
    with pytest.raises(NotFound):
        mark_module_complete(store, "missing-user", "m1", RULES)


def test_evaluate_badges_skips_held_badges() -> None:
    assert evaluate_badges(RULES, ["a", "b", "c", "py-101"], [THREE_MODULES_BADGE]) == ["python-badge"]
    assert evaluate_badges(RULES, ["a"], []) == []


def test_badge_rule_without_condition_never_fires() -> None:
    assert not BadgeRule(badge="empty").is_met(["a", "b", "c"])


def test_default_rules_read_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SKILL_BADGE_MODULE_ID", "rust-101")
    monkeypatch.setenv("SKILL_BADGE_NAME", "rustacean")

    rules = default_badge_rules(load_settings())

    assert BadgeRule(badge="rustacean", required_module="rust-101") in rules
    assert BadgeRule(badge=THREE_MODULES_BADGE, min_completed=3) in rules


class FailingBadgeStore(CountingStore):
    def add_badges(self, user_id, badges):
        raise RuntimeError("database went away")


def test_badge_write_failure_surfaces_after_completion_is_stored(store, make_user) -> None:
    user = make_user()

    with pytest.raises(RuntimeError):
        mark_module_complete(FailingBadgeStore(store), user.id, "py-101", RULES)

    assert store.get_user(user.id).completed_modules == ["py-101"]
    assert store.get_user(user.id).badges == []


#=======================
# RESOURCES
#=======================
def test_resource_moves_through_save_start_complete(store, make_user) -> None:
    user = make_user()

    assert update_resource_status(store, user.id, "r1", "save", RULES) == []
    assert store.get_user(user.id).saved_resources == ["r1"]

    update_resource_status(store, user.id, "r1", "start", RULES)
    fresh = store.get_user(user.id)
    assert fresh.saved_resources == []
    assert fresh.in_progress_resources == ["r1"]

    update_resource_status(store, user.id, "r1", "complete", RULES)
    fresh = store.get_user(user.id)
    assert fresh.in_progress_resources == []
    assert fresh.completed_resources == ["r1"]


def test_resource_actions_are_idempotent(store, make_user) -> None:
    user = make_user()

    update_resource_status(store, user.id, "r1", "save", RULES)
    update_resource_status(store, user.id, "r1", "save", RULES)

    assert store.get_user(user.id).saved_resources == ["r1"]


def test_completing_a_resource_awards_pending_badges(store, make_user) -> None:
    user = make_user()
    for module_id in ("m1", "m2", "m3"):
        store.add_completed_module(user.id, module_id)

    assert update_resource_status(store, user.id, "r1", "complete", RULES) == [THREE_MODULES_BADGE]
    assert update_resource_status(store, user.id, "r2", "complete", RULES) == []


def test_saving_a_resource_does_not_touch_badges(store, make_user) -> None:
    user = make_user()
    for module_id in ("m1", "m2", "m3"):
        store.add_completed_module(user.id, module_id)
    counting = CountingStore(store)

    assert update_resource_status(counting, user.id, "r1", "save", RULES) == []
    assert counting.badge_writes == 0


def test_unknown_resource_action(store, make_user) -> None:
    user = make_user()

    with pytest.raises(ValidationError) as excinfo:
        update_resource_status(store, user.id, "r1", "archive", RULES)

    assert "action" in excinfo.value.fields
    assert store.get_user(user.id).saved_resources == []


def test_resource_action_for_unknown_user(store) -> None:
    with pytest.raises(NotFound):
        update_resource_status(store, "missing-user", "r1", "save", RULES)

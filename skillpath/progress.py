# progress.py
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from skillpath.config import Settings
from skillpath.errors import ValidationError
from skillpath.models import User
from skillpath.store import DocumentStore

logger = logging.getLogger(__name__)

THREE_MODULES_BADGE = "three-modules-complete"

# action -> (set the resource joins, set it leaves)
RESOURCE_ACTIONS = {
    "save": ("saved_resources", None),
    "start": ("in_progress_resources", "saved_resources"),
    "complete": ("completed_resources", "in_progress_resources"),
}


@dataclass(frozen=True)
class BadgeRule:
    """One row of the badge table.

    A rule fires when the user has completed at least ``min_completed`` modules,
    or has completed ``required_module``, whichever is set.
    """

    badge: str
    min_completed: Optional[int] = None
    required_module: Optional[str] = None

    def is_met(self, completed_modules: Sequence[str]) -> bool:
        if self.min_completed is not None:
            return len(completed_modules) >= self.min_completed
        if self.required_module is not None:
            return self.required_module in completed_modules
        return False


def default_badge_rules(settings: Settings) -> List[BadgeRule]:
    return [
        BadgeRule(badge=THREE_MODULES_BADGE, min_completed=3),
        # TODO: the generator never guarantees this module id exists; replace with a real content id once one is chosen
        BadgeRule(badge=settings.skill_badge_name, required_module=settings.skill_badge_module_id),
    ]


def evaluate_badges(rules: Sequence[BadgeRule], completed_modules: Sequence[str], badges: Sequence[str]) -> List[str]:
    """Badges earned by the current state and not already held."""
    held = set(badges)
    earned = []
    for rule in rules:
        if rule.badge in held or rule.badge in earned:
            continue
        if rule.is_met(completed_modules):
            earned.append(rule.badge)
    return earned


def award_badges(store: DocumentStore, user: User, rules: Sequence[BadgeRule]) -> List[str]:
    """Batch-write the badges the user's current state has earned; returns them."""
    new_badges = evaluate_badges(rules, user.completed_modules or [], user.badges or [])
    if new_badges:
        store.add_badges(user.id, new_badges)
        logger.info("User %s earned badges: %s", user.id, ", ".join(new_badges))
    return new_badges


def mark_module_complete(
    store: DocumentStore, user_id: str, module_id: str, rules: Sequence[BadgeRule]
) -> List[str]:
    """
    Record a completed module and award any badges it unlocks.

    At most two writes: the completion itself, then one batched badge update.

    Returns:
        Badges newly awarded by this call ([] when none)
    """
    user = store.add_completed_module(user_id, module_id)
    return award_badges(store, user, rules)


def update_resource_status(
    store: DocumentStore, user_id: str, resource_id: str, action: str, rules: Sequence[BadgeRule]
) -> List[str]:
    """Apply save/start/complete to a resource. Completing one re-checks badges."""
    if action not in RESOURCE_ACTIONS:
        allowed = ", ".join(RESOURCE_ACTIONS)
        raise ValidationError("Invalid action", fields={"action": f"Must be one of: {allowed}"})

    add_to, remove_from = RESOURCE_ACTIONS[action]
    user = store.move_resource(user_id, resource_id, add_to, remove_from)
    if action != "complete":
        return []
    return award_badges(store, user, rules)

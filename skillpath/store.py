# store.py
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skillpath.errors import Conflict, NotFound
from skillpath.models import LearningPath, User

logger = logging.getLogger(__name__)

_UNSET = object()


def _union(current: Optional[List[str]], additions: Iterable[str]) -> List[str]:
    """Order-preserving set union."""
    merged = list(dict.fromkeys(current or []))
    for item in additions:
        if item not in merged:
            merged.append(item)
    return merged


class DocumentStore:
    """Access to the users and learning_paths collections.

    Wraps one SQLAlchemy session; every mutating method commits its own
    transaction, so each call is one atomic write.
    """

    def __init__(self, db: Session):
        self.db = db

    #=======================
    # USERS
    #=======================
    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, user_id: str, email: str, name: str, password_hash: Optional[str]) -> User:
        if self.get_user_by_email(email):
            raise Conflict("User already exists")

        user = User(
            id=user_id,
            email=email,
            name=name,
            password_hash=password_hash,
            skills=[],
            learning_goals=[],
            completed_modules=[],
            badges=[],
            saved_resources=[],
            in_progress_resources=[],
            completed_resources=[],
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("User already exists")
        self.db.refresh(user)
        logger.info("Created user %s", user.id)
        return user

    def update_profile(
        self,
        user_id: str,
        skills=_UNSET,
        learning_goals=_UNSET,
        learning_style=_UNSET,
        resume_text=_UNSET,
    ) -> Tuple[User, bool]:
        """Set the given profile fields. Returns the user and whether anything changed."""
        user = self.require_user(user_id)
        changes = {
            "skills": skills,
            "learning_goals": learning_goals,
            "learning_style": learning_style,
            "resume_text": resume_text,
        }
        changed = False
        for field, value in changes.items():
            if value is _UNSET or getattr(user, field) == value:
                continue
            setattr(user, field, value)
            changed = True

        if changed:
            self._commit()
            self.db.refresh(user)
        return user, changed

    def add_completed_module(self, user_id: str, module_id: str) -> User:
        return self._add_to_set(user_id, "completed_modules", [module_id])

    def add_badges(self, user_id: str, badges: List[str]) -> User:
        return self._add_to_set(user_id, "badges", badges)

    def move_resource(self, user_id: str, resource_id: str, add_to: str, remove_from: Optional[str] = None) -> User:
        """Add the resource to one set and pull it from another, in one write."""
        return self._update_sets(user_id, {add_to: [resource_id]}, {remove_from: [resource_id]} if remove_from else {})

    def _add_to_set(self, user_id: str, field: str, values: List[str]) -> User:
        return self._update_sets(user_id, {field: values}, {})

    def _update_sets(self, user_id: str, additions: Dict[str, List[str]], removals: Dict[str, List[str]]) -> User:
        try:
            user = self.db.query(User).filter(User.id == user_id).with_for_update().first()
            if not user:
                raise NotFound("User not found")
            for field, values in additions.items():
                current = getattr(user, field) or []
                merged = _union(current, values)
                if merged != current:
                    # new list object so the JSON column is flagged dirty
                    setattr(user, field, merged)
            for field, values in removals.items():
                current = getattr(user, field) or []
                kept = [v for v in current if v not in values]
                if kept != current:
                    setattr(user, field, kept)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        return user

    #=======================
    # LEARNING PATHS
    #=======================
    def insert_learning_path(self, path_id: str, user_id: str, modules: List[dict]) -> LearningPath:
        path = LearningPath(id=path_id, user_id=user_id, modules=modules)
        self.db.add(path)
        self._commit()
        self.db.refresh(path)
        return path

    def list_learning_paths(self, user_id: str) -> List[LearningPath]:
        return (
            self.db.query(LearningPath)
            .filter(LearningPath.user_id == user_id)
            .order_by(LearningPath.created_at)
            .all()
        )

    def delete_learning_path(self, path_id: str, user_id: str) -> bool:
        """Delete by (id, owner). False when no row matched both."""
        try:
            deleted = (
                self.db.query(LearningPath)
                .filter(LearningPath.id == path_id, LearningPath.user_id == user_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return deleted > 0

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

# path_generator.py
import logging
import uuid
from typing import Any, Dict, List

from skillpath.ai import AIClient
from skillpath.errors import NotFound, ValidationError
from skillpath.models import LearningPath
from skillpath.schema import Difficulty
from skillpath.store import DocumentStore

logger = logging.getLogger(__name__)


def path_to_dict(path: LearningPath) -> Dict[str, Any]:
    return {"id": path.id, "userId": path.user_id, "modules": list(path.modules or [])}


def generate(store: DocumentStore, ai: AIClient, user_id: str) -> Dict[str, Any]:
    """
    Build and persist a brand-new learning path for a user.

    Two sequential upstream calls: resume analysis (skipped without a resume),
    then path synthesis. Any upstream error aborts before anything is written.

    Args:
        store: Document store for the current request
        ai: Generative endpoint client
        user_id: Owner of the new path

    Returns:
        The stored path as {"id", "userId", "modules"}
    """
    user = store.require_user(user_id)

    identified_skills: List[str] = []
    skill_gaps: List[str] = []
    suggested_skills: List[str] = []

    if user.resume_text and user.resume_text.strip():
        analysis = ai.analyze_resume(user.resume_text, user.learning_goals or [], user.skills or [])
        identified_skills = analysis.identified_skills
        skill_gaps = analysis.skill_gaps
        suggested_skills = analysis.suggested_skills
    else:
        logger.info("User %s has no resume text, skipping resume analysis", user_id)

    modules = ai.generate_learning_path(identified_skills, skill_gaps, suggested_skills, user.learning_style)

    path = store.insert_learning_path(str(uuid.uuid4()), user_id, modules)
    logger.info("Generated learning path %s with %d modules for user %s", path.id, len(modules), user_id)
    return path_to_dict(path)


def list_paths(store: DocumentStore, user_id: str) -> List[Dict[str, Any]]:
    """All paths owned by the user, each module annotated with ``completed``."""
    user = store.get_user(user_id)
    completed = set(user.completed_modules or []) if user else set()

    paths = []
    for path in store.list_learning_paths(user_id):
        data = path_to_dict(path)
        data["modules"] = [dict(m, completed=m.get("id") in completed) for m in data["modules"]]
        paths.append(data)
    return paths


def delete_path(store: DocumentStore, path_id: str, user_id: str) -> None:
    # a path owned by someone else is indistinguishable from a missing one
    if not store.delete_learning_path(path_id, user_id):
        raise NotFound("Learning path not found or you do not have permission to delete it.")
    logger.info("Deleted learning path %s for user %s", path_id, user_id)


def filter_modules(
    store: DocumentStore, user_id: str, difficulty: str = "all", search: str = ""
) -> List[Dict[str, Any]]:
    """Modules across all of the user's paths, filtered by difficulty and a title/description search."""
    difficulty = difficulty.strip().lower()
    if difficulty != "all" and difficulty not in {d.value for d in Difficulty}:
        allowed = ", ".join(["all"] + [d.value for d in Difficulty])
        raise ValidationError("Invalid filter parameters", fields={"difficulty": f"Must be one of: {allowed}"})

    needle = search.strip().casefold()
    modules = []
    for path in list_paths(store, user_id):
        for module in path["modules"]:
            if difficulty != "all" and module.get("difficulty") != difficulty:
                continue
            if needle and not any(needle in (module.get(key) or "").casefold() for key in ("title", "description")):
                continue
            modules.append(module)
    return modules

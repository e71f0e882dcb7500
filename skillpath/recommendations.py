# recommendations.py
import logging
from typing import Any, Dict, List, Optional

from skillpath.ai import AIClient
from skillpath.errors import NotFound
from skillpath.schema import Recommendation
from skillpath.store import DocumentStore

logger = logging.getLogger(__name__)


def find_module(store: DocumentStore, user_id: str, module_id: str) -> Optional[Dict[str, Any]]:
    """Look the module up in the user's paths, newest path first."""
    for path in reversed(store.list_learning_paths(user_id)):
        for module in path.modules or []:
            if isinstance(module, dict) and module.get("id") == module_id:
                return module
    return None


def recommend(store: DocumentStore, ai: AIClient, user_id: str, module_id: str) -> List[Recommendation]:
    """Fresh resource recommendations for one module. Never cached."""
    user = store.require_user(user_id)
    module = find_module(store, user_id, module_id)
    if module is None:
        raise NotFound("Module not found")

    recommendations = ai.recommend_resources(
        module.get("title") or module_id,
        module.get("description"),
        user.learning_style,
        user.skills or [],
    )
    logger.info("Generated %d recommendations for module %s", len(recommendations), module_id)
    return recommendations

# profile.py
import io
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from skillpath.ai import AIClient
from skillpath.errors import ValidationError
from skillpath.models import User
from skillpath.schema import LearningStyle, ResumeAnalysis
from skillpath.store import DocumentStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def parse_string_list(raw: str, field: str) -> List[str]:
    """Form fields carry lists as JSON text, e.g. '["python", "sql"]'."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(f"Invalid {field} data", fields={field: "Must be a JSON array of strings"})
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"Invalid {field} data", fields={field: "Must be a JSON array of strings"})
    return list(dict.fromkeys(v.strip() for v in value if v.strip()))


def parse_learning_style(raw: str) -> str:
    try:
        return LearningStyle(raw.strip().lower()).value
    except ValueError:
        allowed = ", ".join(s.value for s in LearningStyle)
        raise ValidationError("Invalid learning style", fields={"learningStyle": f"Must be one of: {allowed}"})


def extract_resume_text(content_type: Optional[str], data: bytes) -> str:
    if content_type != PDF_CONTENT_TYPE:
        raise ValidationError("Only PDF files are allowed", fields={"resume": "Only PDF files are allowed"})
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, IndexError, TypeError) as e:
        # malformed files surface as assorted errors from deep inside the parser
        logger.warning("Could not read uploaded PDF: %s", e)
        raise ValidationError("Could not read the uploaded PDF", fields={"resume": "Unreadable PDF"})
    return "\n".join(pages).strip()


def update_profile(
    store: DocumentStore,
    user_id: str,
    skills: Optional[str] = None,
    learning_goals: Optional[str] = None,
    learning_style: Optional[str] = None,
    resume: Optional[Tuple[Optional[str], bytes]] = None,
) -> Tuple[User, bool]:
    """
    Apply a profile form to the user.

    Every field is optional; all of them are validated before anything is written.

    Args:
        skills: JSON array text
        learning_goals: JSON array text
        learning_style: visual | auditory | kinesthetic
        resume: (content type, file bytes) of an uploaded PDF

    Returns:
        (user, changed)
    """
    updates: Dict[str, Any] = {}
    if skills:
        updates["skills"] = parse_string_list(skills, "skills")
    if learning_goals:
        updates["learning_goals"] = parse_string_list(learning_goals, "learningGoals")
    if learning_style:
        updates["learning_style"] = parse_learning_style(learning_style)
    if resume is not None:
        updates["resume_text"] = extract_resume_text(*resume)

    return store.update_profile(user_id, **updates)


def analyze_stored_resume(store: DocumentStore, ai: AIClient, user_id: str) -> ResumeAnalysis:
    user = store.require_user(user_id)
    if not user.resume_text or not user.resume_text.strip():
        raise ValidationError("Resume text not found or is empty.", fields={"resume": "Upload a resume first"})
    return ai.analyze_resume(user.resume_text, user.learning_goals or [], user.skills or [])


def motivational_message(store: DocumentStore, ai: AIClient, user_id: str) -> str:
    user = store.require_user(user_id)
    return ai.generate_motivational_message(
        len(user.completed_modules or []),
        user.learning_goals or [],
        user.badges or [],
    )

# ai.py
import json
import logging
import re
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from google.api_core.exceptions import DeadlineExceeded
from langchain_core.prompts import PromptTemplate
from langchain_google_genai import GoogleGenerativeAI
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from skillpath.errors import UpstreamError, UpstreamFormatError, UpstreamParseError, UpstreamTimeout
from skillpath.schema import LearningModule, Recommendation, ResumeAnalysis

logger = logging.getLogger(__name__)

# Only a fence explicitly labelled as json counts
JSON_FENCE_RE = re.compile(r"```json[ \t]*\r?\n(.*?)```", re.DOTALL | re.IGNORECASE)

LOG_SNIPPET_CHARS = 500

#=======================
# PROMPTS
#=======================
RESUME_ANALYSIS_PROMPT = PromptTemplate(
    input_variables=["resume_text", "learning_goals", "skills"],
    template="""Analyze the following resume text and identify skills and skill gaps based on the provided learning goals and current skills.
Resume Text: {resume_text}
Learning Goals: {learning_goals}
Current Skills: {skills}
Provide the analysis in a ```json fenced code block, including:
{{
  "identifiedSkills": ["skill1", "skill2", ...],
  "skillGaps": ["gap1", "gap2", ...],
  "suggestedSkills": ["skill1", "skill2", ...]
}}
""",
)

LEARNING_PATH_PROMPT = PromptTemplate(
    input_variables=["identified_skills", "skill_gaps", "suggested_skills", "learning_style"],
    template="""Generate a learning path based on the following information:
Identified Skills: {identified_skills}
Skill Gaps: {skill_gaps}
Suggested Skills: {suggested_skills}
Learning Style: {learning_style}

Provide the learning path in a ```json fenced code block, as an array of learning modules:
[
  {{
    "id": "module1",
    "title": "Module 1 Title",
    "description": "Module 1 Description",
    "estimatedTime": "2 hours",
    "difficulty": "beginner",
    "resourceLinks": ["link1", "link2"],
    "prerequisites": []
  }},
  {{
    "id": "module2",
    "title": "Module 2 Title",
    "description": "Module 2 Description",
    "estimatedTime": "3 hours",
    "difficulty": "intermediate",
    "resourceLinks": ["link3", "link4"],
    "prerequisites": ["module1"]
  }}
]
""",
)

RECOMMENDATIONS_PROMPT = PromptTemplate(
    input_variables=["module_title", "module_description", "learning_style", "skills"],
    template="""Recommend learning resources for a module titled "{module_title}" with the following description:
{module_description}

The user has the following learning style: {learning_style}
The user's current skills include: {skills}

Provide recommendations in a ```json fenced code block, as an array of resources:
[
  {{
    "title": "Resource Title",
    "description": "Resource Description",
    "url": "Resource URL",
    "type": "article" | "video" | "course" | "other"
  }}
]
""",
)

MOTIVATION_PROMPT = PromptTemplate(
    input_variables=["completed_count", "learning_goals", "badges"],
    template="""Generate a short motivational message for a user who has completed {completed_count} modules,
is working towards the following learning goals: {learning_goals}, and has earned the following badges: {badges}.""",
)


#=======================
# FENCED JSON ADAPTER
#=======================
def extract_json_block(text: Optional[str]) -> str:
    """Return the body of the first ```json fenced block in ``text``.

    The surrounding envelope is never parsed; no fence means UpstreamFormatError.
    """
    match = JSON_FENCE_RE.search(text or "")
    if not match:
        logger.warning("JSON code fence not found in AI response: %.*s", LOG_SNIPPET_CHARS, text)
        raise UpstreamFormatError()
    return match.group(1).strip()


def parse_json_block(text: Optional[str]) -> Any:
    block = extract_json_block(text)
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse AI JSON block (%s): %.*s", e, LOG_SNIPPET_CHARS, block)
        raise UpstreamParseError() from e


@dataclass(frozen=True)
class BareArray:
    """Synthesis payload that is the module array itself."""

    modules: List[Dict[str, Any]]


@dataclass(frozen=True)
class Wrapped:
    """Synthesis payload of the form {"modules": [...]}."""

    modules: List[Dict[str, Any]]


ModulesPayload = Union[BareArray, Wrapped]


def decode_modules_payload(payload: Any) -> ModulesPayload:
    if isinstance(payload, list):
        decoded: ModulesPayload = BareArray(modules=payload)
    elif isinstance(payload, dict) and isinstance(payload.get("modules"), list):
        decoded = Wrapped(modules=payload["modules"])
    else:
        logger.warning("Learning path payload has unrecognized shape: %s", type(payload).__name__)
        raise UpstreamFormatError()

    if not all(isinstance(m, dict) for m in decoded.modules):
        logger.warning("Learning path payload contains non-object modules")
        raise UpstreamFormatError()
    return decoded


def normalize_modules(payload: ModulesPayload) -> List[Dict[str, Any]]:
    return [dict(m) for m in payload.modules]


def validate_modules(modules: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check generated modules against LearningModule and return them in stored form.

    Numeric ids and durations become strings, null lists become [], and a
    ``completed`` flag sent by the model is dropped.
    """
    try:
        validated = TypeAdapter(List[LearningModule]).validate_python(modules)
    except PydanticValidationError as e:
        logger.warning("Learning path modules failed schema validation: %s", e)
        raise UpstreamFormatError() from e
    return [
        m.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"completed"})
        for m in validated
    ]


def _join(values: List[str]) -> str:
    return ", ".join(values)


#=======================
# CLIENTS
#=======================
class AIClient:
    """Prompts and response decoding for the generative endpoint.

    Subclasses provide ``complete``: one prompt in, the raw text envelope out.
    """

    def complete(self, prompt: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def complete_json(self, prompt: str) -> Any:
        return parse_json_block(self.complete(prompt))

    def analyze_resume(self, resume_text: str, learning_goals: List[str], skills: List[str]) -> ResumeAnalysis:
        prompt = RESUME_ANALYSIS_PROMPT.format(
            resume_text=resume_text,
            learning_goals=_join(learning_goals),
            skills=_join(skills),
        )
        payload = self.complete_json(prompt)
        if not isinstance(payload, dict):
            raise UpstreamFormatError()
        try:
            return ResumeAnalysis.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning("Resume analysis failed schema validation: %s", e)
            raise UpstreamFormatError() from e

    def generate_learning_path(
        self,
        identified_skills: List[str],
        skill_gaps: List[str],
        suggested_skills: List[str],
        learning_style: Optional[str],
    ) -> List[Dict[str, Any]]:
        prompt = LEARNING_PATH_PROMPT.format(
            identified_skills=_join(identified_skills),
            skill_gaps=_join(skill_gaps),
            suggested_skills=_join(suggested_skills),
            learning_style=learning_style or "Not specified",
        )
        return validate_modules(normalize_modules(decode_modules_payload(self.complete_json(prompt))))

    def recommend_resources(
        self,
        module_title: str,
        module_description: Optional[str],
        learning_style: Optional[str],
        skills: List[str],
    ) -> List[Recommendation]:
        prompt = RECOMMENDATIONS_PROMPT.format(
            module_title=module_title,
            module_description=module_description or "No description provided.",
            learning_style=learning_style or "Not specified",
            skills=_join(skills),
        )
        payload = self.complete_json(prompt)
        try:
            return TypeAdapter(List[Recommendation]).validate_python(payload)
        except PydanticValidationError as e:
            logger.warning("Recommendations failed schema validation: %s", e)
            raise UpstreamFormatError() from e

    def generate_motivational_message(self, completed_count: int, learning_goals: List[str], badges: List[str]) -> str:
        """Plain text reply, no fence expected."""
        prompt = MOTIVATION_PROMPT.format(
            completed_count=completed_count,
            learning_goals=_join(learning_goals) or "none yet",
            badges=_join(badges) or "none yet",
        )
        message = (self.complete(prompt) or "").strip()
        if not message:
            raise UpstreamFormatError()
        return message


# DeadlineExceeded is what the Google client raises when its own timeout fires
TIMEOUT_ERRORS = (TimeoutError, FutureTimeoutError, DeadlineExceeded)

# same size as the request threadpool, so a call never queues behind other requests
WORKER_THREADS = 40


class GeminiClient(AIClient):
    """Gemini through langchain, with a hard wait bound per call."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        temperature: float = 0,
        timeout_seconds: float = 8.0,
        llm: Any = None,
        max_workers: int = WORKER_THREADS,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._llm = llm
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gemini")

    @classmethod
    def from_settings(cls, settings) -> "GeminiClient":
        return cls(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            temperature=settings.gemini_temperature,
            timeout_seconds=settings.gemini_timeout_seconds,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _get_llm(self):
        if self._llm is None:
            if not self.api_key:
                raise UpstreamError("The AI provider is not configured.")
            self._llm = GoogleGenerativeAI(
                model=self.model,
                google_api_key=self.api_key,
                temperature=self.temperature,
                timeout=self.timeout_seconds,
                max_retries=1,
            )
            logger.info("Initialized Gemini model %s", self.model)
        return self._llm

    def complete(self, prompt: str) -> str:
        llm = self._get_llm()
        started = threading.Event()

        def invoke():
            started.set()
            return llm.invoke(prompt)

        future = self._executor.submit(invoke)
        # the timeout counts from when the call starts, not from when it was queued
        while not started.wait(0.05):
            if future.done():
                break
        try:
            result = future.result(timeout=self.timeout_seconds)
        except CancelledError:
            logger.warning("Gemini call cancelled during shutdown")
            raise UpstreamError()
        except TIMEOUT_ERRORS as e:
            future.cancel()
            logger.warning("Gemini call timed out after %.1fs: %s", self.timeout_seconds, e)
            raise UpstreamTimeout() from e
        except Exception as e:
            logger.error("Error calling Gemini: %s", e)
            raise UpstreamError() from e

        # chat models hand back a message object
        text = getattr(result, "content", result)
        return text if isinstance(text, str) else ""

import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_RE = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
MIN_PASSWORD_LENGTH = 8


class LearningStyle(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class RecommendationType(str, Enum):
    ARTICLE = "article"
    VIDEO = "video"
    COURSE = "course"
    OTHER = "other"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


#=======================
# USERS / AUTH
#=======================
class UserRegister(CamelModel):
    email: str
    password: str
    name: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        if not EMAIL_RE.match(v or ""):
            raise ValueError("Invalid email format")
        return v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v

    @field_validator("name")
    @classmethod
    def name_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v


class UserResponse(CamelModel):
    id: str
    email: str
    name: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    learning_goals: List[str] = Field(default_factory=list)
    learning_style: Optional[LearningStyle] = None
    resume_text: Optional[str] = None
    completed_modules: List[str] = Field(default_factory=list)
    badges: List[str] = Field(default_factory=list)
    saved_resources: List[str] = Field(default_factory=list)
    in_progress_resources: List[str] = Field(default_factory=list)
    completed_resources: List[str] = Field(default_factory=list)


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserResponse


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    email: Optional[str] = None
    user_id: Optional[str] = None


#=======================
# LEARNING PATHS
#=======================
class LearningModule(CamelModel):
    """One module as produced by the generator.

    Generated modules are validated against this model before they are stored.
    Numbers are accepted where text is expected and unknown keys are kept.
    """

    id: str = Field(min_length=1)
    title: str
    description: Optional[str] = None
    estimated_time: Optional[str] = None
    difficulty: Difficulty
    resource_links: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    completed: Optional[bool] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
        extra = "allow"
        coerce_numbers_to_str = True

    @field_validator("difficulty", mode="before")
    @classmethod
    def lower_difficulty(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("resource_links", "prerequisites", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v


class LearningPathResponse(CamelModel):
    id: str
    user_id: str
    modules: List[LearningModule] = Field(default_factory=list)


class ModuleListResponse(CamelModel):
    modules: List[LearningModule] = Field(default_factory=list)


class DeleteLearningPathRequest(CamelModel):
    id: str = Field(min_length=1)


class ProgressUpdateRequest(CamelModel):
    module_id: str = Field(min_length=1)


class ProgressUpdateResponse(CamelModel):
    message: str
    new_badges: List[str] = Field(default_factory=list)


#=======================
# UPSTREAM PAYLOADS
#=======================
class ResumeAnalysis(CamelModel):
    identified_skills: List[str] = Field(default_factory=list)
    skill_gaps: List[str] = Field(default_factory=list)
    suggested_skills: List[str] = Field(default_factory=list)


class Recommendation(CamelModel):
    title: str
    description: str = ""
    url: str
    type: RecommendationType

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    message: str
    error: Optional[str] = None
    fields: Optional[Dict[str, str]] = None

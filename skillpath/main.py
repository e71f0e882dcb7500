import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session, sessionmaker

from skillpath import path_generator, profile, progress, recommendations
from skillpath.ai import AIClient, GeminiClient
from skillpath.auth import authenticate_user, create_access_token, get_current_user, get_password_hash
from skillpath.config import Settings, configure_logging, get_settings
from skillpath.database import create_db_engine, create_session_factory, init_db
from skillpath.errors import Forbidden, SkillPathError, Unauthorized
from skillpath.schema import (
    DeleteLearningPathRequest,
    ErrorResponse,
    LearningPathResponse,
    MessageResponse,
    ModuleListResponse,
    ProfileUpdateResponse,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    Recommendation,
    ResumeAnalysis,
    Token,
    UserRegister,
    UserResponse,
)
from skillpath.store import DocumentStore

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}
UPSTREAM_RESPONSES = {
    **ERROR_RESPONSES,
    424: {"model": ErrorResponse, "description": "AI provider returned unparseable JSON"},
    502: {"model": ErrorResponse, "description": "AI provider response had no JSON block or the wrong shape"},
    503: {"model": ErrorResponse, "description": "AI provider unavailable"},
    504: {"model": ErrorResponse, "description": "AI provider timed out"},
}


# one session per request
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)


def get_ai_client(request: Request) -> AIClient:
    return request.app.state.ai_client


def get_badge_rules(request: Request) -> List[progress.BadgeRule]:
    return request.app.state.badge_rules


#=======================
# ERROR HANDLERS
#=======================
def _error_body(message: str, error: Optional[str] = None, fields: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message, "error": error}
    if fields:
        body["fields"] = fields
    return body


async def skillpath_error_handler(request: Request, exc: SkillPathError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error_code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, getattr(exc, "fields", None)),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        fields[".".join(loc) or "request"] = err.get("msg", "Invalid value")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Invalid request", "validation_error", fields),
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal Server Error", "internal_error"),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), "http_error"),
        headers=getattr(exc, "headers", None),
    )


router = APIRouter()


#=======================
# AUTHENTICATION
#=======================
@router.get("/")
def root():
    return {"message": "SkillPath API"}

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED,
             responses={409: {"model": ErrorResponse}, 400: {"model": ErrorResponse}})
def register_user(user: UserRegister, store: DocumentStore = Depends(get_store)):
    db_user = store.create_user(
        user_id=str(uuid.uuid4()),
        email=user.email,
        name=user.name,
        password_hash=get_password_hash(user.password),
    )
    return db_user

@router.post("/login/oauth", response_model=Token, responses={401: {"model": ErrorResponse}})
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """OAuth2 password login; the username field carries the email."""
    user = authenticate_user(form_data.username, form_data.password, db)
    if not user:
        raise Unauthorized("Incorrect email or password")
    access_token = create_access_token(data={"sub": user["email"], "user_id": user["user_id"]})
    return {"access_token": access_token, "token_type": "bearer"}

@router.get("/me", response_model=UserResponse, responses=ERROR_RESPONSES)
def read_users_me(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return store.require_user(current_user["user_id"])

#=======================
# PROFILE
#=======================
@router.get("/profile/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
def get_profile(
    user_id: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    if user_id != current_user["user_id"]:
        raise Forbidden("You can only view your own profile")
    return store.require_user(user_id)

@router.put("/profile", response_model=ProfileUpdateResponse, responses=ERROR_RESPONSES)
def update_my_profile(
    skills: Optional[str] = Form(None),
    learningGoals: Optional[str] = Form(None),
    learningStyle: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Multipart profile update; lists arrive as JSON text, the resume as a PDF."""
    upload = None
    if resume is not None and resume.filename:
        upload = (resume.content_type, resume.file.read())

    user, changed = profile.update_profile(
        store,
        current_user["user_id"],
        skills=skills,
        learning_goals=learningGoals,
        learning_style=learningStyle,
        resume=upload,
    )
    message = "Profile updated successfully" if changed else "User found, but no changes were made"
    return {"message": message, "user": user}

@router.post("/resume/analyze", response_model=ResumeAnalysis, responses=UPSTREAM_RESPONSES)
def analyze_my_resume(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    ai: AIClient = Depends(get_ai_client),
):
    return profile.analyze_stored_resume(store, ai, current_user["user_id"])

@router.get("/motivation", response_model=MessageResponse, responses=UPSTREAM_RESPONSES)
def get_motivation(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    ai: AIClient = Depends(get_ai_client),
):
    return {"message": profile.motivational_message(store, ai, current_user["user_id"])}

#=======================
# LEARNING PATHS
#=======================
@router.post("/learning-path/generate", response_model=LearningPathResponse, responses=UPSTREAM_RESPONSES)
def generate_learning_path(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    ai: AIClient = Depends(get_ai_client),
):
    """Analyze the resume, synthesize a path and store it as a new learning path"""
    return path_generator.generate(store, ai, current_user["user_id"])

@router.get("/learning-path/list", response_model=List[LearningPathResponse], responses=ERROR_RESPONSES)
def list_my_learning_paths(
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return path_generator.list_paths(store, current_user["user_id"])

@router.get("/learning-path/resources", response_model=ModuleListResponse, responses=ERROR_RESPONSES)
def list_my_modules(
    difficulty: str = Query("all"),
    search: str = Query(""),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    return {"modules": path_generator.filter_modules(store, current_user["user_id"], difficulty, search)}

@router.delete("/learning-path/delete", response_model=MessageResponse, responses=ERROR_RESPONSES)
def delete_my_learning_path(
    payload: DeleteLearningPathRequest,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Delete a learning path that belongs to the authenticated user"""
    path_generator.delete_path(store, payload.id, current_user["user_id"])
    return {"message": "Learning path deleted successfully"}

@router.get("/recommendations", response_model=List[Recommendation], responses=UPSTREAM_RESPONSES)
def list_recommendations(
    module_id: str = Query(..., alias="moduleId", min_length=1),
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    ai: AIClient = Depends(get_ai_client),
):
    return recommendations.recommend(store, ai, current_user["user_id"], module_id)

#=======================
# PROGRESS
#=======================
@router.post("/progress/update", response_model=ProgressUpdateResponse, responses=ERROR_RESPONSES)
def update_progress(
    payload: ProgressUpdateRequest,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    rules: List[progress.BadgeRule] = Depends(get_badge_rules),
):
    """Mark a module complete; newBadges lists only badges earned by this call"""
    new_badges = progress.mark_module_complete(store, current_user["user_id"], payload.module_id, rules)
    return {"message": "Progress updated successfully", "newBadges": new_badges}

@router.post("/learning-path/resources/{resource_id}/{action}", response_model=ProgressUpdateResponse,
             responses=ERROR_RESPONSES)
def update_resource_status(
    resource_id: str,
    action: str,
    current_user: dict = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    rules: List[progress.BadgeRule] = Depends(get_badge_rules),
):
    """Save, start or complete a resource; completing one may award badges"""
    new_badges = progress.update_resource_status(store, current_user["user_id"], resource_id, action, rules)
    message = "Resource status updated, new badges awarded" if new_badges else "Resource status updated"
    return {"message": message, "newBadges": new_badges}


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    ai_client: Optional[AIClient] = None,
    badge_rules: Optional[List[progress.BadgeRule]] = None,
) -> FastAPI:
    """
    Build the API with explicit collaborators.

    Anything not passed in is built from settings: the engine/session factory
    from DATABASE_URL and a Gemini client from the GEMINI_* variables.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = None
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            init_db(engine)
        yield
        app.state.ai_client.close()
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="SkillPath API", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.ai_client = ai_client or GeminiClient.from_settings(settings)
    app.state.badge_rules = badge_rules if badge_rules is not None else progress.default_badge_rules(settings)

    app.add_exception_handler(SkillPathError, skillpath_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)
    return app


app = create_app()

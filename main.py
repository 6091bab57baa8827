# =============================================================================
# SEO Suggest — FastAPI Backend
# =============================================================================
# Scrape a page's SEO tags, keep per-user history, ask Claude for improvements.
#
# Endpoints:
#   POST /auth/register, /auth/login   — bcrypt + JWT accounts
#   POST /analyze                      — fetch + extract + store
#   POST /recommendations              — AI suggestions for a stored analysis
#   GET/DELETE /history[/{id}]         — owner-scoped history
#
# Run:  python main.py
# Test: curl http://localhost:8000/health
# =============================================================================

import functools
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import bcrypt as _bcrypt_lib
import httpx
from jose import JWTError, jwt as jose_jwt
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.orm import Session

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

load_dotenv()                       # must run before database reads DATABASE_URL

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("seo-suggest")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-6")
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "30"))

if not ANTHROPIC_API_KEY:
    logger.warning("ANTHROPIC_API_KEY is not set — AI suggestions will fail")
if not JWT_SECRET:
    logger.warning("JWT_SECRET is not set — auth endpoints will fail")

# ---------------------------------------------------------------------------
# Database & engine
# ---------------------------------------------------------------------------

from database import AnalysisStore, SessionLocal, User, get_db, init_db
from errors import (
    AuthenticationError,
    NotFoundOrUnauthorized,
    SEOSuggestError,
    SuggestionError,
    ValidationError,
)
from llm_client import ClaudeClient
from pdf_export import build_pdf
from seo_engine import (
    PAGE_FETCH_TIMEOUT,
    FetchPageFn,
    ModelCaller,
    analyze_page,
    fetch_page,
    run_recommendation,
)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SEO Suggest API",
    version="1.0.0",
    description="SEO tag extraction with AI improvement suggestions",
)

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Database tables ready")
    # Service handles live for the whole process and are handed out via Depends
    app.state.store = AnalysisStore(SessionLocal)
    app.state.http_client = httpx.AsyncClient(timeout=PAGE_FETCH_TIMEOUT)
    app.state.claude = ClaudeClient.from_api_key(ANTHROPIC_API_KEY, CLAUDE_MODEL)


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.http_client.aclose()
    await app.state.claude.close()


def get_store(request: Request) -> AnalysisStore:
    return request.app.state.store


def get_fetch_page(request: Request) -> FetchPageFn:
    return functools.partial(fetch_page, http_client=request.app.state.http_client)


def get_model_caller(request: Request) -> ModelCaller:
    return request.app.state.claude.complete


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@app.exception_handler(SEOSuggestError)
async def seo_error_handler(request: Request, exc: SEOSuggestError):
    cause = exc.__cause__
    detail = f"{type(exc).__name__}: {exc}"
    if cause is not None:
        detail += f" (cause: {type(cause).__name__}: {cause})"
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed — {detail}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected — {detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    msg = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return await seo_error_handler(request, ValidationError(msg.removeprefix("Value error, ")))


# =============================================================================
# Request models
# =============================================================================

class RegisterRequest(BaseModel):
    email: str
    password: str

    @model_validator(mode="after")
    def credentials_valid(self) -> "RegisterRequest":
        self.email = self.email.lower().strip()
        if "@" not in self.email:
            raise ValueError("A valid email is required")
        if len(self.password) < 6:
            raise ValueError("Password must be at least 6 characters")
        if len(self.password.encode()) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return self


class LoginRequest(BaseModel):
    email: str
    password: str


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    auto_suggest: bool = Field(default=False, alias="autoSuggest")

    @model_validator(mode="after")
    def url_valid(self) -> "AnalyzeRequest":
        self.url = (self.url or "").strip()
        if not self.url:
            raise ValueError("URL is required")
        if not self.url.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return self


class RecommendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_id: Optional[int] = Field(default=None, alias="analysisId")

    @model_validator(mode="after")
    def analysis_id_present(self) -> "RecommendRequest":
        if self.analysis_id is None:
            raise ValueError("Analysis ID is required to get recommendations for a specific analysis.")
        return self


# =============================================================================
# Auth: password hashing, JWT, dependency
# =============================================================================

def _hash_password(password: str) -> str:
    return _bcrypt_lib.hashpw(password.encode(), _bcrypt_lib.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    try:
        return _bcrypt_lib.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # bcrypt rejects passwords over 72 bytes
        return False


def _create_token(user_id: int, email: str) -> str:
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.utcnow() + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jose_jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class CurrentUser(BaseModel):
    id: int
    email: str


def get_current_user(authorization: Optional[str] = Header(default=None)) -> CurrentUser:
    """FastAPI dependency — validates Bearer JWT and returns the current user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Not authenticated")
    token = authorization[len("Bearer "):]
    try:
        payload = jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = int(payload.get("sub"))
        email: str = payload.get("email")
    except (JWTError, TypeError, ValueError) as e:
        raise AuthenticationError("Invalid token") from e
    if not email:
        raise AuthenticationError("Invalid token")
    return CurrentUser(id=user_id, email=email)


# =============================================================================
# Auth endpoints
# =============================================================================

@app.post("/auth/register", status_code=201)
def auth_register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create a new email/password account."""
    if db.query(User).filter(User.email == body.email).first():
        raise ValidationError("Email already registered")
    user = User(email=body.email, hashed_password=_hash_password(body.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return {"id": user.id, "email": user.email, "token": _create_token(user.id, user.email)}


@app.post("/auth/login")
def auth_login(body: LoginRequest, db: Session = Depends(get_db)):
    """Verify email/password credentials and issue a token."""
    email = body.email.lower().strip()
    user = db.query(User).filter(User.email == email).first()
    if not user or not _verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid credentials")
    return {"id": user.id, "email": user.email, "token": _create_token(user.id, user.email)}


# =============================================================================
# Analysis & recommendations
# =============================================================================

@app.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
    fetch_page_fn: FetchPageFn = Depends(get_fetch_page),
    model_caller: ModelCaller = Depends(get_model_caller),
):
    """Fetch the page, extract its SEO tags and store a new analysis."""
    record = await analyze_page(body.url, current_user.id, store=store, fetch_page_fn=fetch_page_fn)

    if body.auto_suggest:
        # The analysis is already committed; a suggestion failure must not lose it.
        try:
            record = await run_recommendation(
                record["id"], current_user.id, store=store, model_caller=model_caller,
            )
        except SuggestionError as e:
            logger.warning(f"[analysis {record['id']}] Auto-suggest failed: {type(e).__name__}: {e.__cause__ or e}")
    return record


@app.post("/recommendations")
async def recommendations(
    body: RecommendRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
    model_caller: ModelCaller = Depends(get_model_caller),
):
    """Generate AI suggestions for a stored analysis, replacing any previous ones."""
    record = await run_recommendation(
        body.analysis_id, current_user.id, store=store, model_caller=model_caller,
    )
    return {
        "message": "AI recommendations generated successfully.",
        "analysisId": record["id"],
        "suggestions": record["aiSuggestions"],
    }


# =============================================================================
# History
# =============================================================================

@app.get("/history")
def list_history(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    """Return the user's analyses, newest first (no raw HTML, no suggestions)."""
    return store.list_for_user(current_user.id, limit=limit, offset=offset)


@app.get("/history/{analysis_id}")
def get_history_item(
    analysis_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    record = store.get_for_user(analysis_id, current_user.id)
    if not record:
        raise NotFoundOrUnauthorized()
    return record


@app.delete("/history/{analysis_id}")
def delete_history_item(
    analysis_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    deleted = store.delete_for_user(analysis_id, current_user.id)
    if not deleted:
        raise NotFoundOrUnauthorized()
    return {"message": "Analysis deleted successfully.", "id": deleted["id"], "url": deleted["url"]}


@app.post("/history/{analysis_id}/export")
def export_analysis_pdf(
    analysis_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    """Generate and return a PDF report for one analysis (owner only)."""
    record = store.get_for_user(analysis_id, current_user.id)
    if not record:
        raise NotFoundOrUnauthorized()

    try:
        pdf_bytes = build_pdf(record)
    except Exception as e:
        logger.error(f"PDF generation failed for analysis {analysis_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="PDF generation failed")

    filename = f"seo-analysis-{analysis_id}.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# =============================================================================
# Health & info
# =============================================================================

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "api_key_set": bool(ANTHROPIC_API_KEY),
        "jwt_secret_set": bool(JWT_SECRET),
    }


@app.get("/info")
async def info():
    return {
        "name": "SEO Suggest API",
        "version": "1.0.0",
        "model": CLAUDE_MODEL,
        "endpoints": {
            "register": "POST /auth/register",
            "login": "POST /auth/login",
            "analyze": "POST /analyze",
            "recommendations": "POST /recommendations",
            "history": "GET /history",
            "history_detail": "GET /history/{id}",
            "history_delete": "DELETE /history/{id}",
            "export": "POST /history/{id}/export",
            "health": "GET /health",
        },
    }


# =============================================================================
# Run
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)

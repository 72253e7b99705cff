# Janseva Tracker: civic complaint intake
# FastAPI + MongoDB + OpenAI (with rule-based fallbacks)

import os
import re
import uuid
import asyncio
import logging
import tempfile
from pathlib import Path
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor

import bcrypt
import uvicorn
from fastapi import FastAPI, HTTPException, Depends, File, Form, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.security import OAuth2PasswordBearer
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from jinja2 import Environment, FileSystemLoader, select_autoescape
from jose import JWTError, jwt
from pydantic import ValidationError
from pymongo import MongoClient
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from . import config, storage
from .config import new_id, now_utc
from .duplicates import detect_duplicate
from .models import (
    Category, ComplaintStatus, ComplaintCreate, ComplaintResponse, ClassifyImageRequest,
    ClassifyTextRequest, DuplicateCheckRequest, DuplicateCheckResult, ImageClassification,
    PriorityRequest, PriorityResult, TextClassification, Transcription,
    UserCreate, UserLogin, UserResponse,
)
from .priority import calculate_priority, round_half_up, severity_for_score, severity_score_ranges
from .providers import AIProviders, build_providers, fallback_providers

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
app = FastAPI(title="Janseva Tracker")
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(self), camera=(self), microphone=(self)"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: blob:; "
            "frame-ancestors 'none'"
        )
        return response

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET, max_age=config.SESSION_MAX_AGE)

db_client = None
db = None
providers: AIProviders = fallback_providers()
executor = ThreadPoolExecutor(max_workers=10)

_jinja_env = Environment(
    loader=FileSystemLoader(str(config.BASE_DIR / "templates")),
    autoescape=select_autoescape(["html", "htm", "xml"]),
)
templates = Jinja2Templates(env=_jinja_env)

config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/static", StaticFiles(directory=str(config.BASE_DIR / "static")), name="static")
app.mount("/uploads", StaticFiles(directory=str(config.UPLOAD_DIR)), name="uploads")

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    global providers
    await startup_db()
    providers = build_providers()
    logger.info("AI backend: %s", providers.backend)
    yield
    if db_client:
        db_client.close()

app.router.lifespan_context = lifespan

async def startup_db():
    global db_client, db
    db_client = MongoClient(config.MONGODB_URL)
    db = db_client[config.MONGODB_DB]
    loop = asyncio.get_event_loop()
    try:
        await loop.run_in_executor(executor, storage.ensure_indexes, db)
        logger.info("Database initialized")
    except Exception as e:
        # Intake keeps serving pages; API calls will fail until MongoDB is reachable
        logger.error("MongoDB unavailable, complaints will not be saved: %s", e)

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_db():
    return db

async def get_providers():
    return providers

# ---------------------------------------------------------------------------
# Auth Helpers
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False

def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(hours=config.JWT_EXPIRE_HOURS)
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

def set_auth_cookie(response, token: str):
    response.set_cookie("token", token, httponly=True, samesite="lax",
                        max_age=config.JWT_EXPIRE_HOURS * 3600)

async def get_token(request: Request, bearer: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    return bearer or request.cookies.get("token")

async def _user_from_token(token: str, db) -> Optional[dict]:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, storage.find_user_by_id, db, user_id)

async def get_current_user(token: Optional[str] = Depends(get_token), db=Depends(get_db)):
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await _user_from_token(token, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user

async def get_optional_user(token: Optional[str] = Depends(get_token), db=Depends(get_db)):
    if token is None:
        return None
    return await _user_from_token(token, db)

def user_to_response(user: dict) -> UserResponse:
    return UserResponse(id=str(user["_id"]), email=user["email"], name=user["name"],
                        created_at=user["created_at"])

async def register_user(data: UserCreate, db) -> dict:
    email = data.email.strip().lower()
    loop = asyncio.get_event_loop()
    existing = await loop.run_in_executor(executor, storage.find_user_by_email, db, email)
    if existing:
        raise HTTPException(status_code=400, detail="User with this email already exists")
    user_doc = {
        "_id": new_id(), "email": email, "name": data.name.strip(),
        "hashed_password": hash_password(data.password), "created_at": now_utc(),
    }
    await loop.run_in_executor(executor, storage.insert_user, db, user_doc)
    logger.info("Registered user %s", email)
    return user_doc

async def authenticate(form: UserLogin, db) -> dict:
    loop = asyncio.get_event_loop()
    user = await loop.run_in_executor(executor, storage.find_user_by_email, db, form.email.strip().lower())
    if not user:
        raise HTTPException(status_code=404, detail="User not found with this email address")
    if not verify_password(form.password, user["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid password")
    return user

# ---------------------------------------------------------------------------
# Utility Helpers
# ---------------------------------------------------------------------------
def validate_uuid(value: str, param_name: str = "id") -> str:
    """Validate that a string is a valid UUID format."""
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail="Invalid parameter type")
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        raise HTTPException(status_code=400, detail=f"Invalid {param_name} format")
    return value

def upload_path(filename: str) -> Path:
    """Resolve a stored upload name, refusing anything that is not a bare filename."""
    if not filename or Path(filename).name != filename or filename.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid image filename")
    return config.UPLOAD_DIR / filename

async def save_upload(upload: UploadFile) -> str:
    """Store an uploaded photo under a fresh unique name and return that name."""
    suffix = Path(upload.filename or "").suffix.lower()
    if not re.match(r"^\.[a-z0-9]{1,5}$", suffix):
        suffix = ""
    name = f"{new_id()}{suffix}"
    data = await upload.read()
    (config.UPLOAD_DIR / name).write_bytes(data)
    return name

def discard_upload(filename: Optional[str]):
    if filename:
        (config.UPLOAD_DIR / filename).unlink(missing_ok=True)

def convert_db_complaint(c: dict) -> ComplaintResponse:
    return ComplaintResponse(**c, id=c["_id"])

def similarity_percent(similarity: float) -> int:
    return round_half_up(similarity * 100)

# ---------------------------------------------------------------------------
# Core Complaint Processing
# ---------------------------------------------------------------------------
class DuplicateComplaintError(Exception):
    """A submission matched a recent complaint closely enough to be rejected."""

    def __init__(self, result: DuplicateCheckResult, insights: dict):
        super().__init__("Potential duplicate complaint detected")
        self.result = result
        self.insights = insights

    def payload(self) -> dict:
        return {
            "message": str(self),
            "similarity": similarity_percent(self.result.similarity),
            "matching_complaint": self.result.matching_complaint_id,
            "ai_insights": self.insights,
        }

async def submit_complaint(data: ComplaintCreate, db, ai: AIProviders,
                           user: Optional[dict] = None) -> tuple:
    """Classify, duplicate-check, score and persist one complaint.

    Returns ``(ComplaintResponse, ai_insights)``. Raises DuplicateComplaintError
    without writing anything when a recent complaint says the same thing.
    """
    image_classification = ImageClassification()
    if data.image:
        image_classification = await ai.image_classifier.classify(upload_path(data.image))
    text_classification = await ai.text_classifier.classify(data.description)
    embedding = await ai.embedder.embed(data.description)

    loop = asyncio.get_event_loop()
    window = await loop.run_in_executor(executor, storage.fetch_recent_window, db)
    duplicate = detect_duplicate(data.description, embedding, window)
    if duplicate.is_duplicate:
        raise DuplicateComplaintError(duplicate, {
            "image_classification": image_classification.model_dump(),
            "text_classification": text_classification.model_dump(),
        })

    if data.category:
        category = data.category.value
    elif text_classification.predicted_category in [c.value for c in Category]:
        category = text_classification.predicted_category
    else:
        category = Category.OTHER.value

    same_location = await loop.run_in_executor(executor, storage.count_same_location, db, data.location)
    priority = calculate_priority(category, data.location, same_location)

    created = now_utc()
    doc = {
        "_id": new_id(), "image": data.image, "category": category,
        "description": data.description, "location": data.location,
        "status": ComplaintStatus.ASSIGNED.value,
        "created_by": user["name"] if user else "Anonymous",
        "created_by_id": str(user["_id"]) if user else None,
        "image_classification": image_classification.model_dump(),
        "text_classification": text_classification.model_dump(),
        "embedding": embedding,
        "ai_duplicate_check": {
            "is_duplicate": duplicate.is_duplicate,
            "similarity": similarity_percent(duplicate.similarity),
            "matching_complaint_id": duplicate.matching_complaint_id,
            "matched_field": duplicate.matched_field,
        },
        "priority_score": priority.score,
        "priority_breakdown": priority.breakdown.model_dump(),
        "ai_severity_level": priority.severity_level.value,
        "ai_reasoning": priority.reasoning,
        "created_at": created, "updated_at": created,
    }
    await loop.run_in_executor(executor, storage.insert_complaint, db, doc)
    logger.info("Complaint %s created: %s at %s, priority %d (%s)", doc["_id"], category,
                data.location, priority.score, priority.severity_level.value)
    insights = {
        "image_classification": image_classification,
        "text_classification": text_classification,
        "duplicate_check": {"is_duplicate": duplicate.is_duplicate,
                            "similarity": similarity_percent(duplicate.similarity)},
        "priority": priority,
    }
    return convert_db_complaint(doc), insights

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(request: Request, user_data: UserCreate, db=Depends(get_db)):
    user_doc = await register_user(user_data, db)
    token = create_access_token({"sub": user_doc["_id"]})
    response = JSONResponse(status_code=201, content=jsonable_encoder({
        "message": "User registered", "user": user_to_response(user_doc), "token": token}))
    set_auth_cookie(response, token)
    return response

@app.post("/api/auth/login")
@limiter.limit("10/minute")
async def login(request: Request, form: UserLogin, db=Depends(get_db)):
    user = await authenticate(form, db)
    token = create_access_token({"sub": user["_id"]})
    response = JSONResponse(content=jsonable_encoder({
        "message": "Login successful", "user": user_to_response(user), "token": token}))
    set_auth_cookie(response, token)
    return response

@app.get("/api/auth/me", response_model=UserResponse)
async def get_me(user=Depends(get_current_user)):
    return user_to_response(user)

# ---------------------------------------------------------------------------
# COMPLAINT ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/api/complaints", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_complaint(request: Request, data: ComplaintCreate, user=Depends(get_optional_user),
                           db=Depends(get_db), ai=Depends(get_providers)):
    try:
        complaint, insights = await submit_complaint(data, db, ai, user)
    except DuplicateComplaintError as dup:
        return JSONResponse(status_code=409, content=jsonable_encoder(dup.payload()))
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error creating complaint: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"message": "Complaint submitted successfully", "complaint": complaint, "ai_insights": insights}

@app.get("/api/complaints/priority")
async def get_priority_complaints(level: Optional[str] = None, db=Depends(get_db)):
    query = {}
    ranges = severity_score_ranges()
    if level in ranges:
        query["priority_score"] = ranges[level]
    try:
        loop = asyncio.get_event_loop()
        docs = await loop.run_in_executor(executor, storage.list_complaints, db, query)
    except Exception as e:
        logger.error("Error filtering complaints by priority: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    complaints = [convert_db_complaint(c) for c in docs]
    grouped: Dict[str, List[ComplaintResponse]] = {lvl: [] for lvl in ranges}
    for c in complaints:
        grouped[severity_for_score(c.priority_score).value].append(c)
    return {"total": len(complaints), "grouped": grouped, "all": complaints}

@app.post("/api/complaints/classify/image", response_model=ImageClassification)
async def classify_image(req: ClassifyImageRequest, ai=Depends(get_providers)):
    if not req.image:
        raise HTTPException(status_code=400, detail="Image filename required")
    return await ai.image_classifier.classify(upload_path(req.image))

@app.post("/api/complaints/classify/text", response_model=TextClassification)
async def classify_text(req: ClassifyTextRequest, ai=Depends(get_providers)):
    if not req.text or not req.text.strip():
        raise HTTPException(status_code=400, detail="Text required")
    return await ai.text_classifier.classify(req.text)

@app.post("/api/complaints/duplicate-check")
async def duplicate_check(req: DuplicateCheckRequest, db=Depends(get_db), ai=Depends(get_providers)):
    if not req.description or not req.description.strip():
        raise HTTPException(status_code=400, detail="Description required")
    embedding = await ai.embedder.embed(req.description)
    loop = asyncio.get_event_loop()
    window = await loop.run_in_executor(executor, storage.fetch_recent_window, db)
    result = detect_duplicate(req.description, embedding, window)
    return {"is_duplicate": result.is_duplicate, "similarity": similarity_percent(result.similarity),
            "matching_complaint_id": result.matching_complaint_id, "matched_field": result.matched_field}

@app.post("/api/complaints/priority/calculate", response_model=PriorityResult)
async def priority_calculate(req: PriorityRequest, db=Depends(get_db)):
    if not req.location.strip():
        raise HTTPException(status_code=400, detail="Location required")
    loop = asyncio.get_event_loop()
    same_location = await loop.run_in_executor(executor, storage.count_same_location, db, req.location)
    return calculate_priority(req.category, req.location, same_location,
                              hours_pending=req.hours_pending, area_weight=req.area_weight)

@app.post("/api/complaints/transcribe", response_model=Transcription)
async def transcribe(audio: UploadFile = File(...), ai=Depends(get_providers)):
    suffix = Path(audio.filename or "").suffix or ".webm"
    data = await audio.read()
    fd, tmp_path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
        return await ai.transcriber.transcribe(tmp_path)
    finally:
        os.unlink(tmp_path)

@app.put("/api/complaints/{complaint_id}/status", response_model=ComplaintResponse)
async def update_status(complaint_id: str, new_status: ComplaintStatus,
                        user=Depends(get_current_user), db=Depends(get_db)):
    complaint_id = validate_uuid(complaint_id, "complaint_id")
    loop = asyncio.get_event_loop()
    updated = await loop.run_in_executor(executor, storage.update_status, db, complaint_id, new_status.value)
    if not updated:
        raise HTTPException(status_code=404, detail="Complaint not found")
    logger.info("%s moved complaint %s to %s", user["email"], complaint_id, new_status.value)
    return convert_db_complaint(updated)

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "Janseva Tracker", "ai_backend": providers.backend,
            "timestamp": datetime.now(timezone.utc)}

# ---------------------------------------------------------------------------
# PAGE ROUTES (Jinja2 templates + session flash messages)
# ---------------------------------------------------------------------------
def flash(request: Request, category: str, payload: Any):
    request.session.setdefault("_flashes", []).append([category, payload])

def pop_flash(request: Request, category: str):
    flashes = request.session.get("_flashes", [])
    for i, (cat, payload) in enumerate(flashes):
        if cat == category:
            del flashes[i]
            request.session["_flashes"] = flashes
            return payload
    return None

def render(request: Request, template: str, active_page: str, user: Optional[dict] = None, **context):
    context.update({"active_page": active_page, "current_user": user})
    return templates.TemplateResponse(request, template, context)

def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)

PAGES = [("", "pages/home.html", "home"), ("faq", "pages/faq.html", "faq")]

for _path, _template, _active in PAGES:
    def _make_handler(tmpl: str, active: str):
        async def handler(request: Request, user=Depends(get_optional_user)):
            return render(request, tmpl, active, user)
        return handler
    app.add_api_route(f"/{_path}" if _path else "/", _make_handler(_template, _active),
                      methods=["GET"], response_class=HTMLResponse, include_in_schema=False)

@app.get("/login", response_class=HTMLResponse, include_in_schema=False)
async def login_page(request: Request):
    return render(request, "pages/login.html", "login", error=pop_flash(request, "error"))

@app.post("/login", include_in_schema=False)
async def login_form(request: Request, email: str = Form(...), password: str = Form(...),
                     db=Depends(get_db)):
    try:
        user = await authenticate(UserLogin(email=email, password=password), db)
    except HTTPException as e:
        flash(request, "error", e.detail)
        return redirect("/login")
    response = redirect("/complaints")
    set_auth_cookie(response, create_access_token({"sub": user["_id"]}))
    return response

@app.get("/register", response_class=HTMLResponse, include_in_schema=False)
async def register_page(request: Request):
    return render(request, "pages/register.html", "login", error=pop_flash(request, "error"))

@app.post("/register", include_in_schema=False)
async def register_form(request: Request, email: str = Form(...), name: str = Form(...),
                        password: str = Form(...), db=Depends(get_db)):
    try:
        user = await register_user(UserCreate(email=email, name=name, password=password), db)
    except ValidationError:
        flash(request, "error", "Please provide a valid email, your name and a password of 6-72 characters")
        return redirect("/register")
    except HTTPException as e:
        flash(request, "error", e.detail)
        return redirect("/register")
    response = redirect("/complaints")
    set_auth_cookie(response, create_access_token({"sub": user["_id"]}))
    return response

@app.get("/logout", include_in_schema=False)
async def logout():
    response = redirect("/")
    response.delete_cookie("token")
    return response

@app.get("/report", response_class=HTMLResponse, include_in_schema=False)
async def report_page(request: Request, user=Depends(get_optional_user)):
    return render(request, "pages/report.html", "how-to", user,
                  categories=[c.value for c in Category],
                  error=pop_flash(request, "error"), duplicate=pop_flash(request, "duplicate"))

@app.post("/report", include_in_schema=False)
async def report_submit(request: Request, description: str = Form(""), location: str = Form(""),
                        category: str = Form(""), image: Optional[UploadFile] = File(None),
                        user=Depends(get_optional_user), db=Depends(get_db), ai=Depends(get_providers)):
    try:
        data = ComplaintCreate(category=category or None, description=description, location=location)
    except ValidationError:
        flash(request, "error", "Please choose a valid category and fill in the description and location")
        return redirect("/report")
    if image is not None and image.filename:
        data.image = await save_upload(image)
    try:
        await submit_complaint(data, db, ai, user)
    except DuplicateComplaintError as dup:
        discard_upload(data.image)
        flash(request, "duplicate", dup.payload() | {"ai_insights": None})
        return redirect("/report")
    except Exception as e:
        logger.error("Report submission error: %s", e)
        discard_upload(data.image)
        flash(request, "error", "Error submitting complaint")
        return redirect("/report")
    return redirect("/complaints")

@app.get("/complaints", response_class=HTMLResponse, include_in_schema=False)
async def complaints_page(request: Request, user=Depends(get_optional_user), db=Depends(get_db)):
    loop = asyncio.get_event_loop()
    docs = await loop.run_in_executor(executor, lambda: storage.list_complaints(db, by_priority=False))
    complaints = [convert_db_complaint(c) for c in docs]
    user_id = str(user["_id"]) if user else None
    mine = [c for c in complaints if user_id and c.created_by_id == user_id]
    others = [c for c in complaints if not user_id or c.created_by_id != user_id]
    return render(request, "pages/complaints.html", "complaints", user,
                  my_complaints=mine, other_complaints=others)

def main():
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

if __name__ == "__main__":
    main()

# Enums and pydantic models shared by the core, the providers and the API

from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Category(str, Enum):
    GARBAGE = "Garbage"
    ROAD_DAMAGE = "Road Damage"
    STREETLIGHT_ISSUE = "Streetlight Issue"
    WATER_LEAKAGE = "Water Leakage"
    DRAINAGE = "Drainage"
    OTHER = "Other"

class ComplaintStatus(str, Enum):
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

class SeverityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

# Labels offered to the classifiers; "Other" is the no-match answer
CANDIDATE_CATEGORIES = [c.value for c in Category if c != Category.OTHER]

# ---------------------------------------------------------------------------
# AI results
# ---------------------------------------------------------------------------
class DuplicateCheckResult(BaseModel):
    is_duplicate: bool = False
    similarity: float = 0.0
    matching_complaint_id: Optional[str] = None
    matched_field: Optional[str] = None

class PriorityBreakdown(BaseModel):
    complaint_count_score: float = 50
    time_pending_score: float = 50
    area_weight_score: float = 50
    category_multiplier: float = 1.0

class PriorityResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    raw_score: float
    breakdown: PriorityBreakdown
    severity_level: SeverityLevel
    reasoning: str
    degraded: bool = False

class Prediction(BaseModel):
    label: str
    confidence: float

class ImageClassification(BaseModel):
    predicted_label: Optional[str] = None
    confidence: float = 0.0
    mapped_category: Optional[str] = None
    all_predictions: List[Prediction] = Field(default_factory=list)

class TextClassification(BaseModel):
    predicted_category: Optional[str] = None
    confidence: float = 0.0
    scores: Dict[str, float] = Field(default_factory=dict)

class Transcription(BaseModel):
    text: Optional[str] = None
    language: Optional[str] = None
    error: Optional[str] = None

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=6, max_length=72)

class UserLogin(BaseModel):
    email: str
    password: str

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    created_at: datetime

# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------
class ComplaintCreate(BaseModel):
    category: Optional[Category] = None
    description: str = Field(..., max_length=5000)
    location: str = Field(..., max_length=500)
    image: Optional[str] = Field(None, max_length=255)

    @field_validator("description", "location")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

class ComplaintResponse(BaseModel):
    id: str
    image: Optional[str] = None
    category: Category
    description: str
    location: str
    status: ComplaintStatus
    created_by: str = "Anonymous"
    created_by_id: Optional[str] = None
    image_classification: Optional[ImageClassification] = None
    text_classification: Optional[TextClassification] = None
    ai_duplicate_check: Optional[Dict[str, Any]] = None
    priority_score: int = Field(50, ge=0, le=100)
    priority_breakdown: PriorityBreakdown = Field(default_factory=PriorityBreakdown)
    ai_severity_level: SeverityLevel = SeverityLevel.MEDIUM
    ai_reasoning: str = ""
    created_at: datetime
    updated_at: datetime

class ClassifyImageRequest(BaseModel):
    image: Optional[str] = Field(None, max_length=255)

class ClassifyTextRequest(BaseModel):
    text: Optional[str] = Field(None, max_length=5000)

class DuplicateCheckRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=500)

class PriorityRequest(BaseModel):
    category: Optional[Category] = None
    description: Optional[str] = Field(None, max_length=5000)
    location: str = Field(..., max_length=500)
    hours_pending: float = Field(0, ge=0)
    area_weight: float = Field(50, ge=0, le=100)

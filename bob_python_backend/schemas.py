"""Shared Pydantic request/response models used across multiple routers."""
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Category taxonomy
# ---------------------------------------------------------------------------

class CategoryFeatures(BaseModel):
    language_markers: List[str] = []
    beliefs: List[str] = []
    cultural_signifiers: List[str] = []
    hashtags: List[str] = []


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    features: CategoryFeatures


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

class Post(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    created_at: Optional[str] = None
    author_id: Optional[str] = None
    conversation_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class ScoreComponents(BaseModel):
    conviction: float = Field(0.0, ge=0.0, le=1.0)
    authenticity: float = Field(0.0, ge=0.0, le=1.0)
    intellectual_rigor: float = Field(0.0, ge=0.0, le=1.0)
    contrarian: float = Field(0.0, ge=0.0, le=1.0)


class ClassificationResult(BaseModel):
    category: str = "unknown"
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    key_indicators: List[str] = []
    secondary_influences: List[str] = []
    language_patterns: List[str] = []
    conviction: float = Field(0.0, ge=0.0, le=1.0)
    based_score: float = Field(0.0, ge=0.0, le=100.0)
    score_components: ScoreComponents = Field(default_factory=ScoreComponents)


class TribalAffiliation(str, Enum):
    FAR_RIGHT_WHACK_JOB = "far right whack job"
    CONSTITUTION_CREATIONIST = "constitution creationist"
    SOULLESS_NPC = "soulless NPC"
    TECHNO_OPTIMIST = "techno-optimist & e/acc"
    PIRATE_PARTY = "pirate party"
    MEGACHURCH_BIBLE_THUMPER = "megachurch bible thumper"
    MAINSTREAM_MEDIA = "the mainstream media"
    ACTUALLY_RACIST = "actually racist"
    REAGAN_NOSTALGIC = "Reagan nostalgic"
    MAGA_FOREVER = "MAGA forever"
    DARK_MAGA = "dark MAGA"
    TRUST_FUND_POVERTY_POSEUR = "trust fund poverty poseur"
    PRAGMATIC_PROGRESSIVE = "pragmatic progressive"
    BLUE_HAIRED_NON_BINARY = "blue haired non binary"
    BERNIE_BROS = "bernie Bros"
    CAT_LADY = "cat lady"
    ELON_TRIBE = "elon tribe"
    JINGOISTIC_IMPERIALIST = "jingoistic imperialist"
    WAR_PIG = "war pig"
    CONSPIRACY_THEORIST = "conspiracy theorist"
    CLOSET_TRUMP_SUPPORTER = "closet Trump supporter"
    MARXIST_MEME_LORD = "marxist meme lord"
    ANTIFA_ANTAGONIST = "antifa antagonist"
    TECH_BRO = "tech bro"
    WHO_IS_JOHN_GALT = "who is john galt"


class PoliticalBelief(BaseModel):
    belief: str
    justification: str = ""
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    importance: float = Field(0.5, ge=0.0, le=1.0)  # weight in the user's identity


class BasedScore(BaseModel):
    tribal_affiliation: TribalAffiliation
    justification: str = ""
    contrarian_beliefs: List[PoliticalBelief] = []
    mainstream_beliefs: List[PoliticalBelief] = []
    based_score: float = Field(50.0, ge=0.0, le=100.0)
    sincerity_score: float = Field(50.0, ge=0.0, le=100.0)
    truthfulness_score: float = Field(50.0, ge=0.0, le=100.0)
    conspiracy_score: float = Field(50.0, ge=0.0, le=100.0)


# ---------------------------------------------------------------------------
# Assertions / fact checks
# ---------------------------------------------------------------------------

class Assertion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    statement: str = Field(min_length=1)
    is_fact_checkable: bool = Field(False, alias="isFactCheckable")
    model_confidence: float = Field(0.5, ge=0.0, le=1.0, alias="modelConfidence")
    user_confidence: float = Field(0.5, ge=0.0, le=1.0, alias="userConfidence")
    source_context: Optional[str] = Field(None, alias="sourceContext")


class FactCheckResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    statement: str
    is_true: bool = Field(alias="isTrue")
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str
    sources: List[str]


class EnhancedBasedScore(BasedScore):
    model_config = ConfigDict(populate_by_name=True)

    fact_checks: List[FactCheckResult] = Field(default_factory=list, alias="factChecks")


class TribeAnalysis(BaseModel):
    tribe: str
    score: int = Field(ge=0, le=100)
    explanation: str


# ---------------------------------------------------------------------------
# OAuth / token records
# ---------------------------------------------------------------------------

class OAuthStateRecord(BaseModel):
    state: str
    code_verifier: str
    expires_at: float  # unix seconds


class AccessTokenRecord(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: float  # unix seconds


class AuthorizationRequest(BaseModel):
    url: str
    state: str
    expires_in: int


# ---------------------------------------------------------------------------
# API requests / responses
# ---------------------------------------------------------------------------

class ProcessRequest(BaseModel):
    userId: Optional[str] = None
    accessToken: Optional[str] = None
    mode: Literal["based_score", "classification", "tribe"] = "based_score"
    factCheck: bool = False


class OAuthCallbackRequest(BaseModel):
    code: Optional[str] = None
    state: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int
    user_id: Optional[str] = None
    username: Optional[str] = None


class RefreshResponse(BaseModel):
    access_token: str


class ErrorResponse(BaseModel):
    error: str
    details: str


# Documented on every router; the app's exception handlers produce this shape.
ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in (400, 404, 429, 500)}

"""
BioTriage - REST API Routes

Endpoints for sessions, per-modality analysis, correlation and system health.

Architecture:
    All triage operations flow through the TriagePipeline, accessed via
    dependency injection from app.state. This ensures:
    - Single source of truth for triage logic
    - Consistent privacy policy enforcement
    - Centralized logging and metrics

Errors raised by the core (BioTriageError subclasses) are turned into
JSON bodies by the handler registered in main.create_app.
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import APIRouter, Depends, Request, status

from biotriage import __version__
from biotriage.config import Settings
from biotriage.core.logging import mask_session_id
from biotriage.core.pipeline import TriagePipeline

from .schemas import (
    AcousticAssessmentSchema,
    ConsolidatedAssessmentSchema,
    CorrelateRequest,
    ErrorResponse,
    FeatureRequest,
    FeatureResponse,
    FeatureVectorSchema,
    HealthResponse,
    SessionAssessmentRequest,
    SessionAssessmentResponse,
    SessionCreateResponse,
    SymptomScoreRequest,
    UrgencyAssessmentSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_pipeline(request: Request) -> TriagePipeline:
    """Dependency to get the triage pipeline from app state."""
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    """Dependency to get settings from app state."""
    return request.app.state.settings


# =============================================================================
# Health & Status
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    pipeline: TriagePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """
    System health check.

    Reports the identifiers of the configured pipeline components.
    """
    components = {
        "api": "operational",
        "pipeline": "operational",
        **pipeline.component_ids(),
        "environment": settings.app_env,
    }
    return HealthResponse(status="healthy", components=components, version=__version__)


# =============================================================================
# Session Management
# =============================================================================

@router.post("/sessions", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_session():
    """
    Create a new triage session.

    Nothing is stored server-side; the id only scopes logs and results.
    Privacy note: Session IDs are random UUIDs with no PII.
    """
    session_id = str(uuid4())
    logger.info("Session created: %s", mask_session_id(session_id))
    return SessionCreateResponse(
        session_id=session_id,
        status="created",
        created_at=datetime.now(timezone.utc),
    )


@router.post("/sessions/{session_id}/assessment", response_model=SessionAssessmentResponse)
async def assess_session(
    session_id: str,
    request: SessionAssessmentRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """
    Run the full pipeline over whichever inputs were captured.

    A failed stage (e.g. a recording too short to analyze) is reported in
    `errors` and the remaining modalities are still consolidated.
    """
    audio = None
    if request.audio is not None:
        audio = request.audio.to_buffer(settings.default_sample_rate)
    facial = request.facial.to_domain() if request.facial is not None else None

    result = await pipeline.assess_async(
        session_id,
        audio=audio,
        facial=facial,
        answers=request.answers,
    )
    return SessionAssessmentResponse.model_validate(result)


# =============================================================================
# Per-Modality Operations
# =============================================================================

@router.post(
    "/features",
    response_model=FeatureResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def analyze_audio(
    request: FeatureRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """
    Extract acoustic features from one recording and classify them.

    Returns 422 INSUFFICIENT_DATA for an empty recording.
    """
    buffer = pipeline.truncate(request.audio.to_buffer(settings.default_sample_rate))
    features = await pipeline.extractor.extract_async(buffer)
    acoustic = pipeline.classifier.classify(features)
    return FeatureResponse(
        features=FeatureVectorSchema.model_validate(features),
        acoustic=AcousticAssessmentSchema.model_validate(acoustic),
        extractor=pipeline.extractor.extractor_id,
    )


@router.post("/symptoms/score", response_model=UrgencyAssessmentSchema)
async def score_symptoms(
    request: SymptomScoreRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
):
    """Score a completed symptom questionnaire."""
    assessment = pipeline.scorer.score(request.answers)
    return UrgencyAssessmentSchema.model_validate(assessment)


@router.post("/correlate", response_model=ConsolidatedAssessmentSchema)
async def correlate(
    request: CorrelateRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
):
    """
    Consolidate any subset of per-modality results.

    An empty body is valid and yields a `partial` assessment.
    """
    consolidated = pipeline.engine.correlate(
        acoustic=request.acoustic.to_domain() if request.acoustic is not None else None,
        facial=request.facial.to_domain() if request.facial is not None else None,
        symptoms=request.symptoms.to_domain() if request.symptoms is not None else None,
    )
    return ConsolidatedAssessmentSchema.model_validate(consolidated)

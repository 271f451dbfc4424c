import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from mneme.application.factory import Services
from mneme.consts import VERSION
from mneme.domain.errors import (
    ConcurrentOptimization,
    InsufficientData,
    InvalidInput,
    ValidationFailed,
)
from mneme.domain.models import Rating
from mneme.interface.serializers import (
    card_to_dict,
    effectiveness_to_dict,
    parameters_to_dict,
    preview_to_dict,
    report_to_dict,
    result_to_dict,
    status_to_dict,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mneme.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"mneme server v{VERSION} starting up...")
    yield
    logger.info("mneme server shutting down...")


app = FastAPI(
    title="mneme",
    description="Adaptive spaced-repetition scheduling service.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReviewRequest(BaseModel):
    card_id: str
    rating: int | str
    response_time_ms: int = Field(default=0, ge=0)


class OptimizeRequest(BaseModel):
    # None uses the configured mode
    conservative: bool | None = None


class SettingsUpdate(BaseModel):
    """Scheduling settings to change; omitted fields keep their committed value."""

    desired_retention: float | None = None
    learning_steps: list[float] | None = None
    relearning_steps: list[float] | None = None
    graduating_interval_days: int | None = None
    easy_interval_days: int | None = None
    minimum_interval_days: int | None = None
    maximum_interval_days: int | None = None
    relearning_stability_penalty: float | None = None
    easy_skips_learning: bool | None = None


start_time = time.time()


async def get_services() -> AsyncIterator[Services]:
    """One set of services per request, closed when the response is sent."""
    from mneme.application.config import resolve_config
    from mneme.application.factory import build_services

    services = build_services(resolve_config())
    try:
        yield services
    finally:
        await services.close()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/learners/{learner_id}/optimization")
async def optimization_status(learner_id: str, services: Services = Depends(get_services)):
    """Cadence status plus, when there is enough history, the pending suggestions."""
    try:
        status = await services.optimization.check(learner_id)
        body = {"status": status_to_dict(status), "analysis": None}
        try:
            report, suggestions, confidence = await services.optimization.analyze(learner_id)
        except InsufficientData:
            return body
        body["analysis"] = report_to_dict(report, suggestions, confidence)
        return body
    except Exception as e:
        logger.error(f"Status failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/learners/{learner_id}/optimize")
async def optimize_learner(
    learner_id: str,
    req: OptimizeRequest | None = None,
    services: Services = Depends(get_services),
):
    conservative = req.conservative if req else None
    logger.info(f"Optimization requested via API for {learner_id}")
    try:
        result = await services.optimization.optimize(learner_id, conservative)
    except ConcurrentOptimization as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Optimization failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return result_to_dict(result)


@app.post("/learners/{learner_id}/reviews")
async def record_review(
    learner_id: str, req: ReviewRequest, services: Services = Depends(get_services)
):
    """Apply a rating to a card and return the card's new memory state."""
    try:
        rating = Rating.parse(req.rating)
        outcome = await services.reviews.record_review(
            learner_id, req.card_id, rating, req.response_time_ms
        )
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Review failed for {learner_id}/{req.card_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return card_to_dict(outcome.card)


@app.get("/learners/{learner_id}/cards/{card_id}/preview")
async def preview_card(
    learner_id: str, card_id: str, services: Services = Depends(get_services)
):
    try:
        preview = await services.reviews.preview(learner_id, card_id)
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Preview failed for {learner_id}/{card_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return preview_to_dict(preview)


@app.get("/learners/{learner_id}/cards/due")
async def due_cards(learner_id: str, services: Services = Depends(get_services)):
    try:
        cards = await services.reviews.due_cards(learner_id)
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Due cards failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return [card_to_dict(c) for c in cards]


@app.get("/learners/{learner_id}/effectiveness")
async def learner_effectiveness(learner_id: str, services: Services = Depends(get_services)):
    """Committed weights scored against the defaults on the learner's own history."""
    try:
        report = await services.optimization.effectiveness(learner_id)
    except Exception as e:
        logger.error(f"Effectiveness failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return effectiveness_to_dict(report)


@app.get("/learners/{learner_id}/parameters")
async def get_parameters(learner_id: str, services: Services = Depends(get_services)):
    try:
        versioned = await services.parameters.get(learner_id)
    except Exception as e:
        logger.error(f"Parameter read failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return parameters_to_dict(versioned)


@app.patch("/learners/{learner_id}/parameters")
async def update_parameters(
    learner_id: str, req: SettingsUpdate, services: Services = Depends(get_services)
):
    """Change scheduling settings; the weight vector is only changed by optimization."""
    logger.info(f"Settings update requested via API for {learner_id}")
    try:
        versioned = await services.parameters.update_settings(
            learner_id, **req.model_dump(exclude_none=True)
        )
    except (InvalidInput, ValidationFailed) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except ConcurrentOptimization as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Settings update failed for {learner_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return parameters_to_dict(versioned)

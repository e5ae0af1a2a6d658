"""HTTP trigger for one dispatch invocation."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from dispatcher.api.dependencies import get_pipeline
from dispatcher.logging import get_logger
from dispatcher.pipeline.runner import DispatchPipeline

logger = get_logger(__name__, component="api")

router = APIRouter(tags=["dispatch"])


@router.options("/process-notifications")
def process_notifications_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok")


@router.post("/process-notifications")
def process_notifications(pipeline: DispatchPipeline = Depends(get_pipeline)):
    """Run one dispatch invocation and report per-entry counts.

    Runs in the threadpool: the send throttle blocks.
    """
    try:
        result = pipeline.run_once()
    except Exception as e:
        logger.error(
            f"Error in process-notifications: {e}",
            extra={"event": "api.dispatch.failed", "error_type": type(e).__name__},
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": str(e) or "Internal server error"})

    return result.summary()

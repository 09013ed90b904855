"""Status router: index statistics, embedding models and recent failures."""

from fastapi import APIRouter, Depends, Query, Request

from server.models.responses import StatusResponse
from shared.dependencies.auth import verify_api_key

status_router = APIRouter()


@status_router.get(
    "/status",
    dependencies=[Depends(verify_api_key)],
    tags=["Status"],
    response_model=StatusResponse,
)
async def handle_status(request: Request, errors: int = Query(default=10, ge=0, le=100)) -> StatusResponse:
    knowledge_base = request.app.state.knowledge_base
    embed_client = request.app.state.embed_client
    stats = knowledge_base.get_stats()
    return StatusResponse(
        document_count=stats.document_count,
        index_count=stats.index_count,
        index_capacity=stats.index_capacity,
        dimensions=stats.dimensions,
        active_model=embed_client.get_active_model(),
        available_models=embed_client.list_models(),
        rebuild_in_progress=stats.rebuild_in_progress,
        recent_errors=request.app.state.error_log.recent(errors),
    )

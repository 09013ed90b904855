"""Query router: grounded question answering over the indexed documents."""

from fastapi import APIRouter, Depends, Request

from server.models.requests import QueryRequest
from server.models.responses import QueryResponse, SourceItem
from shared.dependencies.auth import verify_api_key
from shared.models.retrieval import GenerationOptions

query_router = APIRouter()


@query_router.post(
    "/query",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
    response_model=QueryResponse,
)
async def handle_query(request: Request, body: QueryRequest) -> QueryResponse:
    """Answer a natural language question.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (QueryRequest): The question plus optional top_k and generation overrides.

    Returns:
        QueryResponse: Answer text, the ids it was grounded on and the scored sources.
            context_found is false when no indexed document matched.
    """
    request.app.state.logging.info("Query received — query=%r top_k=%r", body.query[:80], body.top_k)

    answer = await request.app.state.knowledge_base.query(
        body.query,
        top_k=body.top_k,
        generation_options=GenerationOptions(
            model=body.model,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
        ),
    )
    return QueryResponse(
        query=body.query,
        answer=answer.text,
        grounded_on=answer.grounded_on,
        context_found=answer.context_found,
        sources=[
            SourceItem(document_id=hit.document_id, title=hit.title, score=hit.score, chunk_index=hit.chunk_index)
            for hit in answer.sources
        ],
    )

"""Document router: ingestion, removal and corpus re-embedding."""

from fastapi import APIRouter, Depends, Request

from server.models.requests import IngestRequest, ReembedRequest
from server.models.responses import IngestResponse, ReembedResponse, RemoveResponse
from shared.dependencies.auth import verify_api_key

document_router = APIRouter()


@document_router.post(
    "/documents",
    dependencies=[Depends(verify_api_key)],
    tags=["Documents"],
    response_model=IngestResponse,
)
async def handle_ingest(request: Request, body: IngestRequest) -> IngestResponse:
    """Embed a document's extracted text and add it to the index.

    Re-posting an existing document_id replaces its vector.
    """
    knowledge_base = request.app.state.knowledge_base
    document = await knowledge_base.ingest(
        document_id=body.document_id,
        text=body.content,
        title=body.title,
        filename=body.filename,
        metadata=body.metadata,
    )
    return IngestResponse(
        document_id=document.id,
        title=document.title,
        source_type=document.source_type.value,
        characters=len(document.content),
        chunks=len(knowledge_base.get_record_ids(document.id)),
    )


@document_router.delete(
    "/documents/{document_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Documents"],
    response_model=RemoveResponse,
)
async def handle_remove(request: Request, document_id: str) -> RemoveResponse:
    removed = request.app.state.knowledge_base.remove_document(document_id)
    return RemoveResponse(document_id=document_id, removed=removed)


@document_router.post(
    "/documents/reembed",
    dependencies=[Depends(verify_api_key)],
    tags=["Documents"],
    response_model=ReembedResponse,
)
async def handle_reembed(request: Request, body: ReembedRequest) -> ReembedResponse:
    """Switch the embedding model and re-embed the whole corpus.

    Answers 409 while another re-embedding is running.
    """
    request.app.state.logging.info("Re-embedding requested with model '%s'.", body.model_id)
    count = await request.app.state.knowledge_base.reembed_all(body.model_id)
    return ReembedResponse(model_id=body.model_id, reembedded=count)

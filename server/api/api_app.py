"""FastAPI application entry point for the grounded RAG API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from server.api.error_handlers import register_error_handlers
from server.api.routers.DocumentRouter import document_router
from server.api.routers.QueryRouter import query_router
from server.api.routers.StatusRouter import status_router
from services.rag.KnowledgeBaseService import KnowledgeBaseService
from services.rag.RetrievalService import RetrievalService
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.index.VectorIndex import VectorIndex
from shared.logging.logging_setup import setup_logging
from shared.resilience.ErrorLog import ErrorLog

app_version = os.getenv("APP_VERSION", "unknown")

STARTUP_KEYS = [
    "EMBED_ENGINE", "EMBED_MODEL", "EMBED_BATCH_SIZE", "LLM_ENGINE", "LLM_CHAT_MODEL",
    "RAG_TOP_K", "RAG_TEMPERATURE", "INDEX_MAX_RECORDS", "DOCUMENT_MAX_CHARS", "APP_API_KEY",
]


async def _check_backend(client: ClientInterface, logging) -> None:
    """Log the backend's health. An unreachable backend does not block startup."""
    name = f"{client.get_client_type()}/{client.get_engine_name()}"
    try:
        response = await client.do_healthcheck()
    except httpx.HTTPError as e:
        logging.warning("Healthcheck of %s failed: %s", name, e)
        return
    if response.status_code >= 300:
        logging.warning("Healthcheck of %s answered with status %d.", name, response.status_code)
    else:
        logging.info("Healthcheck of %s passed.", name)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)
    # fail fast on a missing key instead of rejecting every request
    app.state.config.get_string_val("APP_API_KEY")
    app.state.logging.info("Starting with configuration: %s", app.state.config.describe(STARTUP_KEYS))

    app.state.error_log = ErrorLog(
        max_entries=int(app.state.config.get_number_val("ERROR_LOG_MAX_ENTRIES", default=100))
    )

    # Initialise clients
    embed_client = EmbedClientManager(helper_config=app.state.config, error_log=app.state.error_log).get_client()
    llm_client = LLMClientManager(helper_config=app.state.config, error_log=app.state.error_log).get_client()
    try:
        await embed_client.boot()
        await llm_client.boot()

        # Health checks
        await _check_backend(embed_client, app.state.logging)
        await _check_backend(llm_client, app.state.logging)

        # Wire up services
        vector_index = VectorIndex(helper_config=app.state.config)
        retrieval_service = RetrievalService(
            helper_config=app.state.config,
            embed_client=embed_client,
            vector_index=vector_index,
            llm_client=llm_client,
        )
        app.state.embed_client = embed_client
        app.state.knowledge_base = KnowledgeBaseService(
            helper_config=app.state.config,
            embed_client=embed_client,
            vector_index=vector_index,
            retrieval_service=retrieval_service,
        )

        active_model = embed_client.get_active_model()
        app.state.logging.info(
            "Grounded RAG API ready (embedding model '%s', %d dimensions).", active_model.id, active_model.dimensions
        )
        yield
    finally:
        # also runs when startup fails half way
        await embed_client.close()
        await llm_client.close()
        app.state.logging.info("Backend clients closed.")


app = FastAPI(
    title="Grounded RAG",
    description="Retrieval-augmented answers grounded on ingested documents.",
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=HelperConfig().get_list_val("APP_CORS_ORIGINS", default=["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(document_router)
app.include_router(query_router)
app.include_router(status_router)
register_error_handlers(app)


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    logging = setup_logging()
    port = int(os.getenv("APP_PORT", "8000"))
    logging.info(f"Starting Grounded RAG API Server v{app_version} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)

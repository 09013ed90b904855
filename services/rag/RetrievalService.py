"""Retrieval service — grounds generated answers on indexed documents.

Query path: embed query → exact top-k search in the VectorIndex → context
block (best match first) → fixed-shape system/user prompt → LLM generation.
"""

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.index.VectorIndex import VectorIndex
from shared.models.retrieval import (
    ChatMessage,
    GeneratedAnswer,
    GenerationOptions,
    RetrievalHit,
    RetrievalResult,
    Role,
)
from shared.resilience.errors import ClientError

NO_CONTEXT_MARKER = "No relevant context found."

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question using the provided context. "
    "If the answer is not contained in the context, say that you are not sure instead of guessing. "
    "Return just the answer."
)

SYSTEM_PROMPT_NO_CONTEXT = (
    "You are a helpful assistant. No relevant documents were found for the user's question. "
    "Answer using only your general knowledge and state clearly that the answer is not based on the user's documents. "
    "Return just the answer."
)


class RetrievalService:
    """Orchestrates embedding, vector retrieval, prompt assembly and generation."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_index: VectorIndex,
        llm_client: LLMClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._index = vector_index
        self._llm = llm_client
        self.default_top_k = int(helper_config.get_number_val("RAG_TOP_K", default=3, minimum=1))
        # grounded answers favour faithfulness over creativity
        self.default_temperature = float(helper_config.get_number_val("RAG_TEMPERATURE", default=0.3))

    ##########################################
    ################ CORE ####################
    ##########################################

    async def answer(
        self,
        query: str,
        top_k: int | None = None,
        generation_options: GenerationOptions | None = None,
    ) -> GeneratedAnswer:
        """Answer a question grounded on the most similar indexed chunks.

        An empty retrieval does not fail: generation runs from general
        knowledge, the text is prefixed with NO_CONTEXT_MARKER and
        grounded_on is empty. Embedding or generation failures are raised.

        Args:
            query (str): The user's question.
            top_k (int | None): Number of chunks to retrieve; defaults to RAG_TOP_K.
            generation_options (GenerationOptions | None): Overrides; temperature defaults to RAG_TEMPERATURE.

        Returns:
            GeneratedAnswer: The answer and the ids of the documents it was grounded on, each once.
        """
        result = await self.retrieve(query, top_k)
        messages = self.build_messages(query, result.hits)

        options = (generation_options or GenerationOptions()).model_copy()
        if options.temperature is None:
            options.temperature = self.default_temperature

        text = await self._llm.generate(messages, options)

        if not result.hits:
            self.logging.info("No relevant context for query %r, answered from general knowledge.", query[:80])
            return GeneratedAnswer(text=f"{NO_CONTEXT_MARKER}\n\n{text}", grounded_on=[], context_found=False, sources=[])

        grounded_on = result.document_ids()
        self.logging.info(
            "Answered query %r grounded on %d chunk(s) of %d document(s).", query[:80], len(result.hits), len(grounded_on)
        )
        return GeneratedAnswer(text=text, grounded_on=grounded_on, context_found=True, sources=result.hits)

    async def retrieve(self, query: str, top_k: int | None = None) -> RetrievalResult:
        """Embed the query and search the index.

        Raises:
            ClientError: If the query is blank.
            RAGError: Any embedding failure; there is nothing to search without a query vector.
        """
        if not query or not query.strip():
            raise ClientError("Query must not be empty.")
        top_k = self.default_top_k if top_k is None else top_k

        query_vector = await self._embed.embed_one(query)
        result = self._index.search(query_vector, top_k)
        self.logging.debug(
            "Retrieved %d hit(s) for query %r (top_k=%d): %s",
            len(result.hits), query[:80], top_k,
            ", ".join("%s=%.3f" % (hit.record_id or hit.document_id, hit.score) for hit in result.hits),
        )
        return result

    ##########################################
    ############### PROMPTS ##################
    ##########################################

    def build_context(self, hits: list[RetrievalHit]) -> str:
        """Concatenate hit contents, best match first, separated by a blank line."""
        if not hits:
            return NO_CONTEXT_MARKER
        return "\n\n".join(hit.content for hit in hits)

    def build_messages(self, query: str, hits: list[RetrievalHit]) -> list[ChatMessage]:
        """Build the system and user messages for a grounded answer."""
        system_prompt = SYSTEM_PROMPT if hits else SYSTEM_PROMPT_NO_CONTEXT
        user_prompt = f"Context:\n{self.build_context(hits)}\n\nQuestion: {query}"
        return [
            ChatMessage(role=Role.SYSTEM, content=system_prompt),
            ChatMessage(role=Role.USER, content=user_prompt),
        ]

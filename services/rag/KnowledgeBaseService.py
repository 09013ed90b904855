"""Knowledge base service.

The entry point the surrounding application talks to: it splits document
text into overlapping chunks, embeds them into the vector index, answers
queries through the RetrievalService, removes documents and re-embeds the
whole corpus when the embedding model changes. Durable storage of documents
is the caller's job; this service only keeps what it needs to re-embed in
memory.
"""

import asyncio
import uuid
from itertools import count

from pydantic import BaseModel

from services.rag.RetrievalService import RetrievalService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.index.VectorIndex import VectorIndex
from shared.models.document import Document, detect_source_type, make_record_id
from shared.models.embedding import EmbeddingVector, EmbedOptions, VectorRecord
from shared.models.retrieval import GeneratedAnswer, GenerationOptions
from shared.resilience.errors import ClientError, RebuildInProgressError


def split_text(text: str, chunk_size: int, chunk_overlap: int) -> list[str]:
    """Split a document's text into overlapping chunks.

    Args:
        text (str): The full document text.
        chunk_size (int): Maximum characters per chunk.
        chunk_overlap (int): Characters shared by consecutive chunks, smaller than chunk_size.

    Returns:
        list[str]: Ordered list of chunks; whitespace-only chunks are dropped.
    """
    if not text:
        return []
    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start = end - chunk_overlap
    return [chunk for chunk in chunks if chunk.strip()]


class KnowledgeBaseStats(BaseModel):
    document_count: int
    index_count: int
    index_capacity: int | None = None
    dimensions: dict[int, int] = {}
    active_model_id: str
    active_model_dimensions: int
    rebuild_in_progress: bool


class KnowledgeBaseService:
    """Ingestion, query, removal and re-embedding over one VectorIndex."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_index: VectorIndex,
        retrieval_service: RetrievalService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._index = vector_index
        self._retrieval = retrieval_service
        self._documents: dict[str, Document] = {}
        # index keys of every document, in chunk order
        self._record_ids: dict[str, list[str]] = {}
        # changes on every write or removal of a document
        self._versions: dict[str, int] = {}
        self._write_counter = count(1)
        self._rebuild_lock = asyncio.Lock()

        self.document_max_chars = int(helper_config.get_number_val("DOCUMENT_MAX_CHARS", default=100000, minimum=1))
        self.chunk_size = int(helper_config.get_number_val("DOCUMENT_CHUNK_SIZE", default=1000, minimum=1))
        self.chunk_overlap = int(helper_config.get_number_val("DOCUMENT_CHUNK_OVERLAP", default=200, minimum=0))
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"DOCUMENT_CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than DOCUMENT_CHUNK_SIZE ({self.chunk_size})."
            )

    ##########################################
    ############### INGESTION ################
    ##########################################

    async def ingest(
        self,
        document_id: str | None,
        text: str,
        title: str | None = None,
        filename: str | None = None,
        metadata: dict | None = None,
    ) -> Document:
        """Chunk and embed a document, then add (or replace) its records in the index.

        Args:
            document_id (str | None): Unique id; a UUID is generated when None.
            text (str): Extracted document text.
            title (str | None): Display title; defaults to the file name stem or the id.
            filename (str | None): Original file name, used to detect the source type.
            metadata (dict | None): Extra payload stored with every chunk vector.

        Returns:
            Document: The stored document.

        Raises:
            ClientError: If the text is blank or needs more records than the index can hold.
            RAGError: Any embedding failure, after logging.
        """
        if not text or not text.strip():
            raise ClientError("Cannot ingest a document without text.")
        document_id = document_id or str(uuid.uuid4())

        if len(text) > self.document_max_chars:
            self.logging.warning(
                "Document '%s' has %d characters, truncating to %d.", document_id, len(text), self.document_max_chars
            )
            text = text[: self.document_max_chars]

        document = Document(
            id=document_id,
            title=title or (filename.rsplit(".", 1)[0] if filename else document_id),
            content=text,
            source_type=detect_source_type(filename),
            metadata=metadata or {},
        )

        chunks = split_text(document.content, self.chunk_size, self.chunk_overlap)
        capacity = self._index.get_max_records()
        if capacity is not None and len(chunks) > capacity:
            raise ClientError(
                f"Document '{document.id}' needs {len(chunks)} index records, the index holds at most {capacity}."
            )

        vectors = await self._embed_chunks(document, chunks)
        self._store(document, chunks, vectors)

        self.logging.info(
            "Ingested document '%s' ('%s', %d chars, %d chunk(s)).",
            document.id, document.title, len(document.content), len(chunks),
        )
        return document

    def remove_document(self, document_id: str) -> bool:
        """Remove a document and every chunk vector of it.

        Returns:
            bool: True if the document was indexed.
        """
        removed = self._forget(document_id)
        if removed:
            self.logging.info("Removed document '%s' from the index.", document_id)
        return removed

    ##########################################
    ################ QUERY ###################
    ##########################################

    async def query(
        self,
        text: str,
        top_k: int | None = None,
        generation_options: GenerationOptions | None = None,
    ) -> GeneratedAnswer:
        """Answer a question grounded on the indexed documents."""
        return await self._retrieval.answer(text, top_k, generation_options)

    ##########################################
    ############## RE-EMBEDDING ##############
    ##########################################

    def is_rebuilding(self) -> bool:
        return self._rebuild_lock.locked()

    async def reembed_all(self, model_id: str) -> int:
        """Switch the active embedding model and re-embed the whole corpus.

        The corpus is embedded first and the index is swapped in one step
        afterwards, so a failed re-embedding leaves the index and the
        previous active model untouched. Documents ingested or removed while
        the corpus is being embedded keep their latest state: a rebuilt
        vector is only used when its document was not written in between.

        Args:
            model_id (str): The model to switch to.

        Returns:
            int: Number of documents in the rebuilt index.

        Raises:
            RebuildInProgressError: If another re-embedding is running.
            ClientError: If the model is unknown.
            RAGError: Any embedding failure.
        """
        if self._rebuild_lock.locked():
            raise RebuildInProgressError("A re-embedding of the corpus is already running.")

        async with self._rebuild_lock:
            previous_model = self._embed.get_active_model()
            model = self._embed.set_active_model(model_id)
            snapshot = [
                (document, self._versions[document.id], split_text(document.content, self.chunk_size, self.chunk_overlap))
                for document in self._documents.values()
            ]
            texts = [chunk for _, _, chunks in snapshot for chunk in chunks]
            self.logging.info(
                "Re-embedding %d document(s) (%d chunks) with model '%s' (was '%s').",
                len(snapshot), len(texts), model.id, previous_model.id,
            )

            try:
                vectors = await self._embed.embed(texts, EmbedOptions(model_id=model.id)) if texts else []
            except Exception as exc:
                self._embed.set_active_model(previous_model.id)
                self.logging.error(
                    "Re-embedding with model '%s' failed, keeping '%s': %s", model.id, previous_model.id, exc
                )
                await self._restore_written_during(snapshot)
                raise

            records: list[VectorRecord] = []
            rebuilt: set[str] = set()
            position = 0
            for document, version, chunks in snapshot:
                document_vectors = vectors[position:position + len(chunks)]
                position += len(chunks)
                # written or removed while the corpus was being embedded
                if self._versions.get(document.id) != version:
                    continue
                rebuilt.add(document.id)
                records.extend(self._make_records(document, chunks, document_vectors))

            # documents written meanwhile were embedded with the new model by ingest
            for document_id, record_ids in self._record_ids.items():
                if document_id in rebuilt:
                    continue
                for record_id in record_ids:
                    existing = self._index.get(record_id)
                    if existing is not None:
                        records.append(existing)

            self._index.rebuild(records)
            self.logging.info(
                "Re-embedded %d document(s) with model '%s' (%d rebuilt, %d written during the rebuild).",
                len(self._documents), model.id, len(rebuilt), len(self._documents) - len(rebuilt),
            )
            return len(self._documents)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def list_documents(self) -> list[Document]:
        return list(self._documents.values())

    def get_record_ids(self, document_id: str) -> list[str]:
        """Index keys of a document's chunks, empty for unknown documents."""
        return list(self._record_ids.get(document_id, []))

    def get_stats(self) -> KnowledgeBaseStats:
        active_model = self._embed.get_active_model()
        return KnowledgeBaseStats(
            document_count=len(self._documents),
            index_count=self._index.count(),
            index_capacity=self._index.get_max_records(),
            dimensions=self._index.dimensions_histogram(),
            active_model_id=active_model.id,
            active_model_dimensions=active_model.dimensions,
            rebuild_in_progress=self.is_rebuilding(),
        )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _embed_chunks(self, document: Document, chunks: list[str]) -> list[EmbeddingVector]:
        """Embed chunks with the active model, again if the model was switched while waiting.

        Raises:
            RAGError: Any embedding failure, after logging.
        """
        while True:
            model = self._embed.get_active_model()
            try:
                vectors = await self._embed.embed(chunks, EmbedOptions(model_id=model.id))
            except Exception as exc:
                self.logging.error("Embedding failed for document '%s' ('%s'): %s", document.id, document.title, exc)
                raise
            if self._embed.get_active_model().id == model.id:
                return vectors
            self.logging.info(
                "Active embedding model changed while embedding document '%s', embedding again with '%s'.",
                document.id, self._embed.get_active_model().id,
            )

    def _make_records(self, document: Document, chunks: list[str], vectors: list[EmbeddingVector]) -> list[VectorRecord]:
        return [
            VectorRecord(
                document_id=make_record_id(document.id, chunk_index),
                embedding=vector,
                metadata=document.to_payload(chunk_index, chunk, len(chunks)).model_dump(mode="json"),
            )
            for chunk_index, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]

    def _store(self, document: Document, chunks: list[str], vectors: list[EmbeddingVector]) -> None:
        """Write a document's chunk records and bump its version. Runs without awaiting."""
        records = self._make_records(document, chunks, vectors)
        record_ids = [record.document_id for record in records]

        # a shorter new version leaves chunks of the previous one behind
        for stale_id in self._record_ids.get(document.id, []):
            if stale_id not in record_ids:
                self._index.remove(stale_id)

        evicted: list[str] = []
        for record in records:
            evicted.extend(self._index.add(record.document_id, record.embedding, record.metadata))

        self._documents[document.id] = document
        self._record_ids[document.id] = record_ids
        self._versions[document.id] = next(self._write_counter)

        for owner in {record_id.rsplit(":", 1)[0] for record_id in evicted}:
            if owner != document.id and self._forget(owner):
                self.logging.warning("Document '%s' lost chunks to index eviction and was dropped.", owner)

    def _forget(self, document_id: str) -> bool:
        """Drop a document and its remaining records. Returns True if anything was indexed."""
        known = self._documents.pop(document_id, None) is not None
        self._versions.pop(document_id, None)
        removed = [record_id for record_id in self._record_ids.pop(document_id, []) if self._index.remove(record_id)]
        return known or bool(removed)

    async def _restore_written_during(self, snapshot: list[tuple[Document, int, list[str]]]) -> None:
        """Re-embed documents written during a failed rebuild with the restored model.

        Failures are logged and leave the document indexed with the other model,
        which search skips until it is ingested again.
        """
        snapshot_versions = {document.id: version for document, version, _ in snapshot}
        written = [
            document for document in list(self._documents.values())
            if snapshot_versions.get(document.id) != self._versions.get(document.id)
        ]
        for document in written:
            chunks = split_text(document.content, self.chunk_size, self.chunk_overlap)
            version = self._versions.get(document.id)
            try:
                vectors = await self._embed_chunks(document, chunks)
            except Exception as exc:
                self.logging.warning(
                    "Document '%s' stays embedded with a different model after the failed rebuild: %s", document.id, exc
                )
                continue
            if self._versions.get(document.id) == version:
                self._store(document, chunks, vectors)

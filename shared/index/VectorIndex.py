"""In-memory vector index with exact cosine similarity search.

Scaling assumption: search compares the query against every stored vector,
O(records x dimensions) per query (vectorised with numpy). That is fine for
corpora of a few ten thousand documents; larger corpora need an approximate
nearest neighbour index, which this module does not provide.

Records whose dimensions differ from the query (left over from a previous
embedding model) are skipped by search instead of raising.

One lock guards every read and write, so a search always sees a consistent
snapshot and never a record that is being replaced.
"""

import threading
from dataclasses import dataclass
from itertools import count

import numpy as np

from shared.helper.HelperConfig import HelperConfig
from shared.models.embedding import EmbeddingVector, VectorRecord
from shared.models.retrieval import RetrievalHit, RetrievalResult


@dataclass
class _Entry:
    record: VectorRecord
    vector: np.ndarray
    norm: float
    last_used: int


class VectorIndex:
    """Maps document ids to their embedding and metadata.

    Args:
        helper_config (HelperConfig): Configuration and logger.
        max_records (int | None): Capacity. None reads INDEX_MAX_RECORDS (0 = unbounded).
            When a new id would exceed the capacity, the least recently used
            record (added, replaced or returned by a search) is evicted.
    """

    def __init__(self, helper_config: HelperConfig, max_records: int | None = None) -> None:
        self.logging = helper_config.get_logger()
        if max_records is None:
            max_records = int(helper_config.get_number_val("INDEX_MAX_RECORDS", default=0, minimum=0))
        self._max_records = max_records if max_records > 0 else None
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._ticks = count(1)

    ##########################################
    ################ WRITERS #################
    ##########################################

    def add(self, document_id: str, embedding: EmbeddingVector, metadata: dict | None = None) -> list[str]:
        """Insert or replace the record of `document_id`.

        A replaced record keeps its original insertion position, which is
        what search uses to break score ties.

        Args:
            document_id (str): Unique document id.
            embedding (EmbeddingVector): The document vector.
            metadata (dict | None): Opaque payload returned with search hits.

        Returns:
            list[str]: Ids evicted to stay within capacity (usually empty).
        """
        entry = self._make_entry(VectorRecord(document_id=document_id, embedding=embedding, metadata=metadata or {}))
        with self._lock:
            evicted = []
            if document_id not in self._entries:
                evicted = self._evict_for_one_more()
            self._entries[document_id] = entry
        for evicted_id in evicted:
            self.logging.warning("Index capacity of %d reached, evicted document '%s'.", self._max_records, evicted_id)
        return evicted

    def remove(self, document_id: str) -> bool:
        """Remove a record.

        Returns:
            bool: True if a record existed and was removed.
        """
        with self._lock:
            return self._entries.pop(document_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def rebuild(self, records: list[VectorRecord]) -> None:
        """Replace the whole content of the index in one step.

        Readers see either the old or the new corpus, never a half-filled one.
        """
        entries = {record.document_id: self._make_entry(record) for record in records}
        if self._max_records is not None and len(entries) > self._max_records:
            keep = list(entries)[-self._max_records:]
            self.logging.warning(
                "Rebuild with %d records exceeds index capacity of %d, keeping the last %d.",
                len(entries), self._max_records, self._max_records,
            )
            entries = {document_id: entries[document_id] for document_id in keep}
        with self._lock:
            self._entries = entries

    ##########################################
    ################ READERS #################
    ##########################################

    def search(self, query_embedding: EmbeddingVector, top_k: int) -> RetrievalResult:
        """Exact top-k cosine similarity search.

        Only records with the query's dimensions are scored; when both the
        query and a record name their embedding model, the models must match
        as well.

        Args:
            query_embedding (EmbeddingVector): The query vector.
            top_k (int): Maximum number of hits. top_k <= 0 yields no hits.

        Returns:
            RetrievalResult: Hits by descending score, insertion order on ties.
        """
        if top_k <= 0:
            return RetrievalResult(hits=[])

        query = np.asarray(query_embedding.values, dtype=np.float64)
        query_norm = float(np.linalg.norm(query))

        with self._lock:
            candidates = [entry for entry in self._entries.values() if self._is_comparable(entry.record.embedding, query_embedding)]
            if not candidates:
                return RetrievalResult(hits=[])

            matrix = np.vstack([entry.vector for entry in candidates])
            norms = np.array([entry.norm for entry in candidates])
            denominators = norms * query_norm
            scores = np.zeros(len(candidates), dtype=np.float64)
            nonzero = denominators > 0
            scores[nonzero] = (matrix[nonzero] @ query) / denominators[nonzero]
            scores = np.clip(scores, -1.0, 1.0)

            order = np.argsort(-scores, kind="stable")[:top_k]
            tick = next(self._ticks)
            hits: list[RetrievalHit] = []
            for position in order:
                entry = candidates[position]
                entry.last_used = tick
                record = entry.record
                hits.append(
                    RetrievalHit(
                        document_id=record.metadata.get("document_id", record.document_id),
                        record_id=record.document_id,
                        score=float(scores[position]),
                        metadata=dict(record.metadata),
                    )
                )
        return RetrievalResult(hits=hits)

    def get(self, document_id: str) -> VectorRecord | None:
        with self._lock:
            entry = self._entries.get(document_id)
        return entry.record if entry else None

    def contains(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._entries

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def dimensions_histogram(self) -> dict[int, int]:
        """Number of records per vector dimensionality. More than one key means mixed model generations."""
        histogram: dict[int, int] = {}
        with self._lock:
            for entry in self._entries.values():
                dimensions = entry.record.embedding.dimensions
                histogram[dimensions] = histogram.get(dimensions, 0) + 1
        return histogram

    def get_max_records(self) -> int | None:
        return self._max_records

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _make_entry(self, record: VectorRecord) -> _Entry:
        vector = np.asarray(record.embedding.values, dtype=np.float64)
        return _Entry(record=record, vector=vector, norm=float(np.linalg.norm(vector)), last_used=next(self._ticks))

    @staticmethod
    def _is_comparable(stored: EmbeddingVector, query: EmbeddingVector) -> bool:
        if stored.dimensions != query.dimensions:
            return False
        if stored.model_id and query.model_id and stored.model_id != query.model_id:
            return False
        return True

    def _evict_for_one_more(self) -> list[str]:
        """Evict least recently used records until one more fits. Caller holds the lock."""
        if self._max_records is None:
            return []
        evicted: list[str] = []
        while len(self._entries) >= self._max_records:
            victim = min(self._entries, key=lambda document_id: self._entries[document_id].last_used)
            del self._entries[victim]
            evicted.append(victim)
        return evicted

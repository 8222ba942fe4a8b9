"""
Content embeddings and semantic search.

Transcripts, summaries, notes and Q&A conversations are split into
overlapping sentence chunks, embedded with the OpenAI embeddings endpoint
and stored as float arrays in the ``embeddings`` table. Search loads the
caller's candidate chunks and ranks them in-process by cosine similarity.
"""

import os
import re
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import psycopg2
from openai import OpenAIError
from psycopg2.extras import Json

from ..errors import ExternalServiceError
from . import llm

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
EMBEDDING_DIMENSIONS = 1536
MAX_CHUNK_SIZE = 512
CHUNK_OVERLAP_WORDS = 50
EMBEDDING_BATCH_SIZE = 20

CONTENT_TYPES = ("transcript", "summary", "note", "conversation")

_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


# =============================================================================
# Chunking
# =============================================================================

def chunk_text(text: Optional[str], max_chunk_size: int = MAX_CHUNK_SIZE, overlap: int = CHUNK_OVERLAP_WORDS) -> List[str]:
    """
    Split ``text`` into sentence-aligned chunks of roughly ``max_chunk_size``
    characters. Each new chunk begins with the last ``overlap`` words of the
    previous one so context carries across boundaries. A single sentence
    longer than the limit becomes its own chunk.
    """
    if not text or not text.strip():
        return []

    chunks: List[str] = []
    current = ""

    for sentence in _SENTENCE_BOUNDARY.split(text.strip()):
        if not sentence:
            continue
        if current and len(current) + len(sentence) > max_chunk_size:
            chunks.append(current.strip())
            words = current.split()
            current = " ".join(words[-overlap:]) + " " if overlap and len(words) > overlap else ""
        current += sentence + " "

    if current.strip():
        chunks.append(current.strip())
    return chunks


# =============================================================================
# Embedding generation
# =============================================================================

class EmbeddingGenerator:
    """Batches texts through the OpenAI embeddings endpoint."""

    def __init__(self, model_name: Optional[str] = None, batch_size: int = EMBEDDING_BATCH_SIZE):
        self.model_name = model_name or os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        self.batch_size = batch_size

    def generate_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []

        client = llm.get_openai_client()
        embeddings: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(texts), self.batch_size):
            batch = [t.replace("\n", " ") for t in texts[i:i + self.batch_size]]
            logger.debug(f"Embedding batch {i // self.batch_size + 1}/{total_batches}")
            try:
                response = client.embeddings.create(model=self.model_name, input=batch)
            except OpenAIError as e:
                logger.error(f"OpenAI embedding generation failed: {e}")
                raise ExternalServiceError("OpenAI", str(e))
            embeddings.extend(item.embedding for item in response.data)

        return embeddings

    def generate_embedding(self, text: str) -> List[float]:
        return self.generate_embeddings([text])[0]


_generator: Optional[EmbeddingGenerator] = None
_generator_lock = threading.Lock()


def get_embedding_generator() -> EmbeddingGenerator:
    global _generator
    with _generator_lock:
        if _generator is None:
            _generator = EmbeddingGenerator()
            logger.info(f"Embedding generator ready (model={_generator.model_name})")
    return _generator


# =============================================================================
# Storage
# =============================================================================

def delete_embeddings(
    conn,
    video_id: int,
    content_type: Optional[str] = None,
    conversation_id: Optional[int] = None,
    commit: bool = True,
) -> int:
    conditions = ["video_id = %s"]
    params: List[Any] = [video_id]
    if content_type:
        conditions.append("content_type = %s")
        params.append(content_type)
    if conversation_id is not None:
        conditions.append("metadata->>'conversation_id' = %s")
        params.append(str(conversation_id))

    with conn.cursor() as cur:
        cur.execute(f"DELETE FROM embeddings WHERE {' AND '.join(conditions)}", params)
        deleted = cur.rowcount
    if commit:
        conn.commit()
    return deleted


def store_content_embeddings(
    conn,
    video_id: int,
    user_id: Optional[int],
    content_type: str,
    text: str,
    metadata: Optional[Dict[str, Any]] = None,
    generator: Optional[EmbeddingGenerator] = None,
) -> int:
    """
    Chunk, embed and store ``text``. Existing chunks of the same video and
    content type (and conversation, if given in metadata) are replaced.
    Returns the number of chunks stored. The replacement happens in one
    transaction, so a failed insert leaves the previous chunks in place.
    """
    if content_type not in CONTENT_TYPES:
        raise ValueError(f"Unknown content type: {content_type}")

    chunks = chunk_text(text)
    if not chunks:
        return 0

    generator = generator or get_embedding_generator()
    vectors = generator.generate_embeddings(chunks)
    metadata = metadata or {}

    try:
        delete_embeddings(conn, video_id, content_type, metadata.get("conversation_id"), commit=False)
        with conn.cursor() as cur:
            for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
                cur.execute(
                    """
                    INSERT INTO embeddings
                        (video_id, user_id, content_type, chunk_index, content, embedding, metadata)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (video_id, user_id, content_type, index, chunk, list(vector), Json(metadata)),
                )
        conn.commit()
    except psycopg2.Error:
        conn.rollback()
        raise

    logger.info(f"Stored {len(chunks)} {content_type} chunks for video {video_id}")
    return len(chunks)


# =============================================================================
# Search
# =============================================================================

@dataclass
class SearchFilters:
    content_types: List[str] = field(default_factory=list)
    video_id: Optional[int] = None
    category_id: Optional[int] = None
    collection_id: Optional[int] = None
    is_favorite: Optional[bool] = None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank_by_similarity(
    query_vector: Sequence[float],
    candidates: List[Dict[str, Any]],
    limit: int,
    min_similarity: float = 0.0,
) -> List[Dict[str, Any]]:
    """
    Score ``candidates`` (dicts with an ``embedding`` key) against the query
    and return the top ``limit`` with a ``similarity`` key, best first.
    Candidates whose dimension differs from the query are skipped.
    """
    query = np.asarray(query_vector, dtype=np.float64)
    usable = [c for c in candidates if c.get("embedding") is not None and len(c["embedding"]) == query.size]
    if not usable or query.size == 0:
        return []

    matrix = np.asarray([c["embedding"] for c in usable], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, matrix @ query / norms, 0.0)

    order = np.argsort(-scores, kind="stable")
    ranked = []
    for idx in order:
        score = float(scores[idx])
        if score < min_similarity:
            break
        hit = {k: v for k, v in usable[idx].items() if k != "embedding"}
        hit["similarity"] = score
        ranked.append(hit)
        if len(ranked) >= limit:
            break
    return ranked


def load_candidates(
    conn,
    user_id: Optional[int],
    anonymous_session_id: Optional[str],
    filters: SearchFilters,
) -> List[Dict[str, Any]]:
    """Embedded chunks visible to the caller that satisfy ``filters``."""
    scope = []
    params: List[Any] = []
    if user_id is not None:
        scope.append("v.user_id = %s")
        params.append(user_id)
    if anonymous_session_id:
        scope.append("v.anonymous_session_id = %s")
        params.append(anonymous_session_id)
    if not scope:
        return []

    conditions = [f"({' OR '.join(scope)})"]
    if filters.content_types:
        conditions.append("e.content_type = ANY(%s)")
        params.append(list(filters.content_types))
    if filters.video_id is not None:
        conditions.append("e.video_id = %s")
        params.append(filters.video_id)
    if filters.category_id is not None:
        conditions.append("v.category_id = %s")
        params.append(filters.category_id)
    if filters.is_favorite is not None:
        conditions.append("v.is_favorite = %s")
        params.append(filters.is_favorite)
    if filters.collection_id is not None:
        conditions.append(
            "EXISTS (SELECT 1 FROM collection_videos cv WHERE cv.video_id = v.id AND cv.collection_id = %s)"
        )
        params.append(filters.collection_id)

    with conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT e.id, e.video_id, e.content, e.content_type, e.chunk_index,
                   e.embedding, e.metadata, v.title AS video_title, v.youtube_id
            FROM embeddings e
            JOIN videos v ON v.id = e.video_id
            WHERE {' AND '.join(conditions)}
            """,
            params,
        )
        return [dict(row) for row in cur.fetchall()]


def semantic_search(
    conn,
    query: str,
    user_id: Optional[int],
    anonymous_session_id: Optional[str],
    filters: Optional[SearchFilters] = None,
    limit: int = 10,
    generator: Optional[EmbeddingGenerator] = None,
) -> List[Dict[str, Any]]:
    generator = generator or get_embedding_generator()
    filters = filters or SearchFilters()

    query_vector = generator.generate_embedding(query)
    candidates = load_candidates(conn, user_id, anonymous_session_id, filters)
    results = rank_by_similarity(query_vector, candidates, limit)

    logger.info(f"Semantic search: {len(candidates)} candidates, {len(results)} returned")
    return results

"""OpenAI embedding helpers; batched requests with a fixed pause between batches."""

import os
import time
import logging
from typing import List, Dict, Any, Optional, Sequence
from dataclasses import dataclass

import numpy as np
import openai
from dotenv import load_dotenv
from tenacity import retry, stop_after_attempt, wait_exponential

from .exceptions import ConfigurationError
from .llm import get_openai_client

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Width of knowledge_base.embedding and the search_knowledge_base argument
EMBEDDING_DIMENSIONS = 1536

# Models that can shorten their output to EMBEDDING_DIMENSIONS
SUPPORTED_EMBED_MODELS = ("text-embedding-3-small", "text-embedding-3-large")


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""
    model: str = "text-embedding-3-small"
    dimensions: int = EMBEDDING_DIMENSIONS
    batch_size: int = 100
    max_tokens: int = 8191  # Max tokens for text-embedding-3-small
    batch_delay: float = 0.1  # Seconds between batches


def get_embedding_config() -> EmbeddingConfig:
    """Get embedding configuration from environment."""
    model = os.getenv("EMBED_MODEL", "text-embedding-3-small")
    if model not in SUPPORTED_EMBED_MODELS:
        raise ConfigurationError(
            f"Unsupported embedding model {model}; expected one of {', '.join(SUPPORTED_EMBED_MODELS)}"
        )

    return EmbeddingConfig(
        model=model,
        dimensions=EMBEDDING_DIMENSIONS,
        batch_size=int(os.getenv("EMBED_BATCH_SIZE", "100")),
        max_tokens=8191,
        batch_delay=float(os.getenv("EMBED_BATCH_DELAY", "0.1"))
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=4, max=10),
    reraise=True
)
def generate_embeddings_batch(
    texts: List[str],
    config: EmbeddingConfig,
    client: openai.OpenAI
) -> List[List[float]]:
    """
    Generate embeddings for a batch of texts using OpenAI API.

    Args:
        texts: List of text strings to embed
        config: Embedding configuration
        client: OpenAI client instance

    Returns:
        List of embedding vectors
    """
    try:
        truncated_texts = []
        for text in texts:
            # Simple token approximation: ~4 chars per token
            if len(text) > config.max_tokens * 4:
                truncated_text = text[:config.max_tokens * 4]
                logger.warning(f"Truncated text from {len(text)} to {len(truncated_text)} characters")
                truncated_texts.append(truncated_text)
            else:
                truncated_texts.append(text)

        response = client.embeddings.create(
            model=config.model,
            input=truncated_texts,
            dimensions=config.dimensions
        )

        embeddings = [item.embedding for item in response.data]
        logger.info(f"Generated {len(embeddings)} embeddings using {config.model}")

        return embeddings

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise


def generate_embedding(
    text: str,
    config: Optional[EmbeddingConfig] = None,
    client: Optional[openai.OpenAI] = None
) -> List[float]:
    """Generate the embedding for a single text."""
    config = config or get_embedding_config()
    client = client or get_openai_client()
    return generate_embeddings_batch([text], config, client)[0]


def generate_batch_embeddings(
    texts: Sequence[str],
    config: Optional[EmbeddingConfig] = None,
    client: Optional[openai.OpenAI] = None
) -> List[List[float]]:
    """
    Generate embeddings for many texts in batches.

    Batches are sent one after another with ``config.batch_delay`` seconds
    between them. The result is aligned with ``texts``.
    """
    if not texts:
        return []

    config = config or get_embedding_config()
    client = client or get_openai_client()

    all_embeddings: List[List[float]] = []

    for i in range(0, len(texts), config.batch_size):
        batch = list(texts[i:i + config.batch_size])

        logger.info(f"Processing embedding batch {i // config.batch_size + 1}: {len(batch)} texts")
        all_embeddings.extend(generate_embeddings_batch(batch, config, client))

        if i + config.batch_size < len(texts):
            time.sleep(config.batch_delay)

    return all_embeddings


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity between two vectors of the same length."""
    if len(a) != len(b):
        raise ValueError("Vectors must have same length")

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def find_similar_texts(
    query_text: str,
    candidate_texts: List[str],
    top_k: int = 5,
    config: Optional[EmbeddingConfig] = None,
    client: Optional[openai.OpenAI] = None
) -> List[Dict[str, Any]]:
    """Rank candidate texts by similarity to a query (useful for testing)."""
    config = config or get_embedding_config()
    client = client or get_openai_client()

    query_embedding = generate_embedding(query_text, config, client)
    candidate_embeddings = generate_batch_embeddings(candidate_texts, config, client)

    similarities = [
        {
            "text": candidate_texts[index],
            "similarity": cosine_similarity(query_embedding, embedding),
            "index": index
        }
        for index, embedding in enumerate(candidate_embeddings)
    ]

    similarities.sort(key=lambda item: item["similarity"], reverse=True)
    return similarities[:top_k]


def to_pgvector(embedding: Sequence[float]) -> str:
    """Format an embedding as a pgvector literal."""
    return "[" + ",".join(str(float(v)) for v in embedding) + "]"

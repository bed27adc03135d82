"""Ollama client wrapper for embeddings and text generation."""
import asyncio
from typing import Dict, List, Optional, Protocol

import httpx
import structlog

from healthrag import config
from healthrag.rag.errors import EmbeddingError

logger = structlog.get_logger()


class Embedder(Protocol):
    """Anything that maps text to a fixed-length vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class Generator(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, prompt: str) -> str:
        ...


class OllamaClient:
    """Async client for the Ollama embedding and generation API."""

    def __init__(
        self,
        base_url: str = None,
        embedding_model: str = None,
        chat_model: str = None,
        timeout: float = None,
        embedding_timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            chat_model: Generation model (defaults to config.CHAT_MODEL)
            timeout: HTTP timeout for generation requests in seconds
            embedding_timeout: Overall deadline for one embedding call in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.chat_model = chat_model or config.CHAT_MODEL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.embedding_timeout = embedding_timeout or config.EMBEDDING_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=self._transport
        )

    async def embeddings(self, prompt: str, model: str = None) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to the client's embedding model)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.embedding_model

        payload = {
            "model": model,
            "prompt": prompt,
        }

        async with self._client(self.embedding_timeout) as client:
            logger.debug(
                "ollama_embedding_request",
                model=model,
                prompt_length=len(prompt),
            )

            response = await client.post("/api/embeddings", json=payload)
            response.raise_for_status()

            data = response.json()

            logger.debug(
                "ollama_embedding_response",
                model=model,
                dimension=len(data.get("embedding", [])),
            )

            return data

    async def embed(self, text: str) -> List[float]:
        """Embed text with an overall deadline.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: On timeout, HTTP failure or an empty embedding
        """
        try:
            data = await asyncio.wait_for(
                self.embeddings(text), timeout=self.embedding_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "ollama_embedding_timeout",
                timeout=self.embedding_timeout,
                text_preview=text[:50],
            )
            raise EmbeddingError(
                f"Embedding timed out after {self.embedding_timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e), base_url=self.base_url)
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        embedding = data.get("embedding") or []
        if not embedding:
            raise EmbeddingError("Empty embedding returned from Ollama")

        return embedding

    async def detect_dimension(self) -> int:
        """Detect embedding dimension by embedding a short sample string.

        Raises:
            EmbeddingError: If the sample embedding fails
        """
        dimension = len(await self.embed("test"))
        logger.info(
            "embedding_dimension_detected",
            model=self.embedding_model,
            dimension=dimension,
        )
        return dimension

    async def generate(
        self,
        prompt: str,
        model: str = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Generate a completion for a prompt.

        Args:
            prompt: Full prompt text
            model: Model to use (defaults to the client's chat model)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Generated text

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.chat_model

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with self._client(self.timeout) as client:
                logger.info(
                    "ollama_generate_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()

                text = response.json().get("response", "")

                logger.info(
                    "ollama_generate_response",
                    model=model,
                    response_length=len(text),
                )

                return text

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise

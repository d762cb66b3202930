"""Ollama LLM client wrapper with error handling."""
import httpx
from typing import List, Dict, Optional
import structlog

from docqa import config
from docqa.errors import GenerationError

logger = structlog.get_logger()


class OllamaClient:
    """Async client for interacting with Ollama API.

    Implements the ``Generator`` and ``Embedder`` protocols through
    :meth:`generate` and :meth:`embed`.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        chat_model: str = None,
        embedding_model: str = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.GENERATION_TIMEOUT)
            chat_model: Model used by generate() (defaults to config.CHAT_MODEL)
            embedding_model: Model used by embed() (defaults to config.EMBEDDING_MODEL)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to the client's chat model)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If Ollama service is unavailable
        """
        model = model or self.chat_model

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.debug(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post(
                    f"{self.base_url}/api/chat",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_chat_response",
                    model=model,
                    response_length=len(data.get("message", {}).get("content", "")),
                )

                return data

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

    async def generate(self, prompt: str) -> str:
        """Generate a completion for a single prompt.

        Args:
            prompt: Full prompt text, sent as one user message

        Returns:
            The model's response text

        Raises:
            GenerationError: If Ollama is unreachable, errors, times out or
                returns an empty message
        """
        try:
            data = await self.chat([{"role": "user", "content": prompt}])
        except httpx.TimeoutException as e:
            raise GenerationError(f"Generation timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        content = data.get("message", {}).get("content", "")
        if not content:
            raise GenerationError("Empty response from generation backend")
        return content

    async def embeddings(
        self,
        prompt: str,
        model: str = None,
    ) -> Dict:
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

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for text.

        Raises:
            httpx.HTTPError: On API errors
            RuntimeError: If Ollama returns an empty embedding
        """
        data = await self.embeddings(text)
        embedding = data.get("embedding", [])
        if not embedding:
            raise RuntimeError("Empty embedding returned from Ollama")
        return embedding

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise


# Global client instance
ollama_client = OllamaClient()

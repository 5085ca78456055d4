"""HTTP client for the remote chat-completion and embedding capabilities.

Both capabilities follow the OpenAI wire format. Responses are decoded into
pydantic models; any transport, status, or schema problem is raised as a
``RemoteCapabilityError`` so callers can apply their local fallback. There is
no retry loop: the first failure is reported immediately.
"""

from typing import List, Optional, Sequence

import httpx
import numpy as np
import structlog
from pydantic import BaseModel, ValidationError

from ..common.config import CrateSearchConfig

logger = structlog.get_logger("intelligence.llm_client")


class RemoteCapabilityError(Exception):
    """Remote chat or embedding call failed."""
    pass


class RemoteCapabilityUnavailable(RemoteCapabilityError):
    """No credentials are configured for the remote capability."""
    pass


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    temperature: float
    max_tokens: Optional[int] = None


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletionResponse(BaseModel):
    choices: List[ChatChoice]


class EmbeddingRequest(BaseModel):
    model: str
    input: List[str]


class EmbeddingDatum(BaseModel):
    embedding: List[float]
    index: int


class EmbeddingResponse(BaseModel):
    data: List[EmbeddingDatum]


class LLMClient:
    """Client for the remote text-generation and embedding capabilities.

    Parameters
    - config: supplies credentials, endpoints, models, and batch size
    - http_client: optional shared ``httpx.AsyncClient``; when omitted the
      client creates and owns one
    """

    def __init__(
        self,
        config: CrateSearchConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = (config.openai_api_key or "").strip()
        self.chat_url = config.cs_chat_url
        self.chat_model = config.cs_chat_model
        self.embedding_url = config.cs_embedding_url
        self.embedding_model = config.cs_embedding_model
        self.batch_size = config.cs_embedding_batch_size
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.cs_http_timeout)

    @property
    def available(self) -> bool:
        """Whether credentials are configured."""
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _post(self, url: str, payload: BaseModel) -> dict:
        if not self.available:
            raise RemoteCapabilityUnavailable("No API key configured")
        try:
            response = await self.http_client.post(
                url,
                headers=self._headers(),
                json=payload.model_dump(exclude_none=True),
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise RemoteCapabilityError(
                f"{url} returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteCapabilityError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise RemoteCapabilityError(f"Malformed JSON from {url}: {e}") from e

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
        model: Optional[str] = None,
    ) -> str:
        """Run one chat completion and return the trimmed first choice."""
        request = ChatCompletionRequest(
            model=model or self.chat_model,
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        body = await self._post(self.chat_url, request)
        try:
            parsed = ChatCompletionResponse.model_validate(body)
        except ValidationError as e:
            raise RemoteCapabilityError(f"Unexpected chat response shape: {e}") from e

        if not parsed.choices:
            raise RemoteCapabilityError("Chat response contained no choices")
        content = parsed.choices[0].message.content.strip()
        if not content:
            raise RemoteCapabilityError("Chat response content was empty")
        return content

    async def _embed_chunk(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        """Embed one request-sized chunk, aligned with ``texts`` by index."""
        request = EmbeddingRequest(model=self.embedding_model, input=list(texts))
        body = await self._post(self.embedding_url, request)
        try:
            parsed = EmbeddingResponse.model_validate(body)
        except ValidationError as e:
            raise RemoteCapabilityError(f"Unexpected embedding response shape: {e}") from e

        # Response order is not guaranteed; place each vector by its index
        slots: List[Optional[np.ndarray]] = [None] * len(texts)
        for datum in sorted(parsed.data, key=lambda d: d.index):
            if 0 <= datum.index < len(texts):
                slots[datum.index] = np.asarray(datum.embedding, dtype=np.float32)
        return slots

    async def embed_texts(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        """Embed many texts as one logical batch.

        Chunks are sent sequentially at ``batch_size``. A failed chunk is
        logged and its slots stay ``None``; the other chunks still count.

        Raises ``RemoteCapabilityUnavailable`` when no credentials are set.
        """
        if not texts:
            return []
        if not self.available:
            raise RemoteCapabilityUnavailable("No API key configured")

        vectors: List[Optional[np.ndarray]] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = texts[start:start + self.batch_size]
            try:
                vectors.extend(await self._embed_chunk(chunk))
            except RemoteCapabilityError as e:
                logger.warning(
                    "Embedding chunk failed",
                    chunk_start=start,
                    chunk_size=len(chunk),
                    error=str(e)
                )
                vectors.extend([None] * len(chunk))
        return vectors

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query text, raising ``RemoteCapabilityError`` on failure."""
        slots = await self._embed_chunk([text])
        if slots[0] is None:
            raise RemoteCapabilityError("Embedding response did not include the query vector")
        return slots[0]

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

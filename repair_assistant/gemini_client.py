"""Gemini REST client for repair analysis.

Sends one ``generateContent`` request per call to the Generative Language API
with Google Search grounding enabled, and turns the response into an
``AnalysisResult``: the concatenated candidate text plus the web citations
found in the grounding metadata.

The client does not retry. Every failure is raised as ``ServiceCallError``
carrying whatever the service told us (HTTP code, RPC status, message) so the
resilient invoker can classify it.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import LLMConfig
from .errors import ServiceCallError
from .models import AnalysisRequest, AnalysisResult, Citation, ImagePart
from .prompts import build_system_instruction

logger = logging.getLogger("repair-assistant.gemini")

EMPTY_RESPONSE_TEXT = "No analysis could be generated, please try again later."


def extract_citations(response: Dict[str, Any]) -> List[Citation]:
    """Collect ``{uri, title}`` pairs from the first candidate's grounding chunks.

    Chunks missing either field are dropped.
    """
    candidates = response.get("candidates") or []
    if not candidates:
        return []
    metadata = candidates[0].get("groundingMetadata") or {}

    citations = []
    for chunk in metadata.get("groundingChunks") or []:
        web = chunk.get("web") or {}
        uri, title = web.get("uri"), web.get("title")
        if uri and title:
            citations.append(Citation(uri=uri, title=title))
    return citations


def extract_text(response: Dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = response.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if not part.get("thought"))


def _error_from_response(response: httpx.Response) -> ServiceCallError:
    """Build a ServiceCallError from a Google API error body."""
    status = None
    message = response.text
    try:
        error = response.json().get("error") or {}
        status = error.get("status")
        message = error.get("message") or message
    except (ValueError, AttributeError):
        pass
    label = f"{response.status_code} {status}" if status else str(response.status_code)
    return ServiceCallError(
        f"Gemini API error: {label} - {message}",
        status_code=response.status_code,
        status=status,
    )


class GeminiClient:
    """Async client for the Gemini ``generateContent`` endpoint.

    Attributes:
        config: Model, endpoint and generation settings.
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        api_key_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or LLMConfig()
        self._api_key_provider = api_key_provider or (lambda: None)
        self._transport = transport

    def build_payload(self, request: AnalysisRequest) -> Dict[str, Any]:
        """Request body for one analysis, parts in request order."""
        parts = []
        for part in request.parts():
            if isinstance(part, ImagePart):
                parts.append(
                    {
                        "inlineData": {
                            "mimeType": part.mime_type,
                            "data": part.to_base64(),
                        }
                    }
                )
            else:
                parts.append({"text": part.text})

        payload: Dict[str, Any] = {
            "systemInstruction": {
                "parts": [{"text": build_system_instruction(self.config.response_language)}]
            },
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_output_tokens,
            },
        }
        if self.config.web_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    async def generate(self, request: AnalysisRequest) -> AnalysisResult:
        """Run one analysis call.

        Returns:
            AnalysisResult: Report text and grounding citations.

        Raises:
            ServiceCallError: On transport failure or any non-2xx answer.
        """
        api_key = self._api_key_provider()
        if not api_key:
            raise ServiceCallError("API key not valid: no Gemini API key selected")

        url = f"{self.config.api_base}/models/{self.config.model}:generateContent"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    url,
                    headers={
                        "x-goog-api-key": api_key,
                        "Content-Type": "application/json",
                    },
                    json=self.build_payload(request),
                    timeout=self.config.timeout,
                )
        except httpx.TransportError as e:
            raise ServiceCallError(
                f"Network error calling Gemini: {e!r}", transport=True
            ) from e

        if response.status_code != 200:
            raise _error_from_response(response)

        data = response.json()
        text = extract_text(data)
        if not text:
            logger.warning("Gemini returned no text for the analysis request")
        citations = extract_citations(data)
        logger.info(
            f"Analysis received ({len(text)} chars, {len(citations)} citations)"
        )
        return AnalysisResult(summary_text=text or EMPTY_RESPONSE_TEXT, citations=citations)

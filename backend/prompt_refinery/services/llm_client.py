"""
OpenAI-compatible chat completion client.

Used for both text completion (Groq) and vision captioning (OpenRouter).
Requests are blocking, so each call runs in a worker thread; concurrent
perception calls therefore overlap instead of queueing on the event loop.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from prompt_refinery.utils.call_tracker import CallTracker

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Content and bookkeeping from one chat completion."""
    content: str
    finish_reason: str = "unknown"
    model: str = ""
    usage: Dict[str, Any] = field(default_factory=dict)


class CompletionError(Exception):
    """
    Transport or API failure from a chat completion call.

    ``status_code`` is the HTTP status when the provider answered;
    ``timed_out`` is set when the call exceeded its timeout.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, timed_out: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.timed_out = timed_out

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class ChatCompletionClient:
    """
    Minimal client for ``POST {api_base}/chat/completions``.

    Example:

        client = ChatCompletionClient(
            api_key=Config.GROQ_API_KEY,
            api_base=Config.GROQ_API_BASE,
            model_name=Config.TEXT_MODEL,
            timeout=Config.LLM_TIMEOUT,
            service_name='groq'
        )
        result = await client.complete([
            {"role": "system", "content": "..."},
            {"role": "user", "content": "..."}
        ])
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_base: str,
        model_name: str,
        timeout: float,
        service_name: str,
        call_tracker: Optional[CallTracker] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Bearer token for the provider (None disables the client)
            api_base: Base URL, without the trailing ``/chat/completions``
            model_name: Model identifier sent with every request
            timeout: Request timeout in seconds
            service_name: Name used for call accounting and logs
            call_tracker: Optional shared call tracker
            extra_headers: Provider-specific headers (e.g. OpenRouter attribution)
            session: Optional requests session (mainly for tests)
        """
        self.api_key = api_key
        self.api_base = api_base.rstrip('/')
        self.model_name = model_name
        self.timeout = timeout
        self.service_name = service_name
        self.call_tracker = call_tracker
        self.extra_headers = extra_headers or {}
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.3,
        max_tokens: int = 4096,
        top_p: Optional[float] = None
    ) -> CompletionResult:
        """
        Run one chat completion.

        Args:
            messages: OpenAI-style message list
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens
            top_p: Optional nucleus sampling parameter

        Returns:
            CompletionResult with the first choice's content

        Raises:
            CompletionError: on timeout, HTTP error or malformed response
        """
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }
        if top_p is not None:
            payload["top_p"] = top_p

        return await asyncio.to_thread(self._post, payload)

    async def ping(self) -> Dict[str, Any]:
        """Issue a tiny completion to confirm the provider is reachable."""
        if not self.is_configured:
            return {
                'status': 'unhealthy',
                'model': self.model_name,
                'api_status': 'not_configured',
                'error': 'API key not configured'
            }
        try:
            await self.complete([{"role": "user", "content": "Hello"}], max_tokens=10)
            return {'status': 'healthy', 'model': self.model_name, 'api_status': 'connected'}
        except CompletionError as e:
            return {
                'status': 'unhealthy',
                'model': self.model_name,
                'api_status': 'disconnected',
                'error': e.message
            }

    def _post(self, payload: Dict[str, Any]) -> CompletionResult:
        if not self.is_configured:
            raise CompletionError(f"{self.service_name} API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers
        }

        try:
            response = self.session.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            self._record(False)
            raise CompletionError(
                f"{self.service_name} request timed out after {self.timeout}s",
                timed_out=True
            )
        except requests.HTTPError as e:
            self._record(False)
            status = e.response.status_code if e.response is not None else None
            raise CompletionError(f"{self.service_name} API error: {e}", status_code=status)
        except (requests.RequestException, ValueError) as e:
            self._record(False)
            raise CompletionError(f"{self.service_name} request failed: {e}")

        self._record(True)

        try:
            choice = data['choices'][0]
            content = choice.get('message', {}).get('content') or ''
        except (KeyError, IndexError, TypeError, AttributeError):
            raise CompletionError(f"{self.service_name} returned an unexpected response shape")

        usage = data.get('usage') or {}
        logger.debug(
            f"{self.service_name} completion: {len(content)} chars, "
            f"tokens={usage.get('total_tokens', 0)}"
        )

        return CompletionResult(
            content=content,
            finish_reason=choice.get('finish_reason') or 'unknown',
            model=data.get('model') or self.model_name,
            usage=usage
        )

    def _record(self, success: bool):
        if self.call_tracker:
            self.call_tracker.record_call(self.service_name, success=success)

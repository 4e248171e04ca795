"""
Generation gateway: prompt -> lazily produced text fragments.

All provider calls go through this module. The streaming path never raises
once started: a provider failure ends the stream with one ErrorFragment whose
kind tells the caller what went wrong. The non-streaming path (summaries,
keyword generation) raises the taxonomy exceptions instead.
"""
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import openai

from portfolio_ai.config import Settings
from portfolio_ai.exceptions import ConfigurationMissing, CredentialInvalid, ProviderTransient
from portfolio_ai.logging_config import get_logger

logger = get_logger(__name__)


class GenerationErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    CREDENTIAL_INVALID = "credential_invalid"
    PROVIDER_ERROR = "provider_error"


ERROR_MESSAGES: Dict[GenerationErrorKind, str] = {
    GenerationErrorKind.MISSING_CREDENTIAL: (
        "Error: the assistant has no API key configured. "
        "Set your own key to keep chatting."
    ),
    GenerationErrorKind.CREDENTIAL_INVALID: (
        "Error: the provider rejected the API key. "
        "Check the key and try again."
    ),
    GenerationErrorKind.PROVIDER_ERROR: (
        "Error: the assistant could not finish this answer. "
        "Please try again in a moment."
    ),
}

# Substrings some OpenAI-compatible providers use for a rejected key.
_INVALID_KEY_MARKERS = ("api key", "api_key", "invalid key", "incorrect key")


class ErrorFragment(str):
    """Terminal stream fragment carrying the error classification."""

    kind: GenerationErrorKind

    def __new__(cls, kind: GenerationErrorKind, text: Optional[str] = None) -> "ErrorFragment":
        obj = super().__new__(cls, text if text is not None else ERROR_MESSAGES[kind])
        obj.kind = kind
        return obj


def classify_error(exc: BaseException) -> GenerationErrorKind:
    """Map a provider exception to the error taxonomy."""
    if isinstance(exc, ConfigurationMissing):
        return GenerationErrorKind.MISSING_CREDENTIAL
    if isinstance(exc, CredentialInvalid):
        return GenerationErrorKind.CREDENTIAL_INVALID
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return GenerationErrorKind.CREDENTIAL_INVALID
    message = str(exc).lower()
    if any(marker in message for marker in _INVALID_KEY_MARKERS):
        return GenerationErrorKind.CREDENTIAL_INVALID
    return GenerationErrorKind.PROVIDER_ERROR


def _to_exception(kind: GenerationErrorKind, exc: BaseException) -> Exception:
    if kind == GenerationErrorKind.CREDENTIAL_INVALID:
        return CredentialInvalid(str(exc))
    if kind == GenerationErrorKind.MISSING_CREDENTIAL:
        return ConfigurationMissing(str(exc))
    return ProviderTransient(str(exc))


class TextGenerator(Protocol):
    """External generator: streaming and non-streaming variants."""

    def stream(self, prompt: str, api_key: str) -> AsyncIterator[str]:
        ...

    async def complete(self, prompt: str, api_key: str, temperature: Optional[float] = None) -> str:
        ...


class OpenAITextGenerator:
    """OpenAI-compatible chat completions (OPENAI_BASE_URL allows other providers)."""

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.openai_api_key
        self.base_url = settings.openai_base_url
        self.model = settings.openai_model
        self.timeout_seconds = settings.openai_timeout_seconds
        self.max_retries = settings.openai_max_retries
        self.temperature = settings.openai_temperature
        self._client: Any = None

    def _new_client(self, api_key: str):  # noqa: ANN202
        return openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=float(self.timeout_seconds),
            max_retries=self.max_retries,
        )

    def _get_client(self, api_key: str):  # noqa: ANN202
        """Shared client for the server key; a visitor key gets its own short-lived client."""
        if api_key != self.api_key:
            return self._new_client(api_key)
        if self._client is None:
            self._client = self._new_client(api_key)
        return self._client

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        return [{"role": "user", "content": prompt}]

    async def stream(self, prompt: str, api_key: str) -> AsyncIterator[str]:
        client = self._get_client(api_key)
        response = None
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            # Release the HTTP stream even when the consumer stops early
            if response is not None:
                await response.close()
            if client is not self._client:
                await client.close()

    async def complete(self, prompt: str, api_key: str, temperature: Optional[float] = None) -> str:
        client = self._get_client(api_key)
        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                temperature=self.temperature if temperature is None else temperature,
            )
            return (resp.choices[0].message.content or "").strip()
        finally:
            if client is not self._client:
                await client.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class GenerationGateway:
    """generate(prompt) -> finite, non-restartable fragment stream."""

    def __init__(self, generator: TextGenerator, default_api_key: Optional[str] = None) -> None:
        self._generator = generator
        self._default_api_key = default_api_key

    def resolve_key(self, api_key: Optional[str] = None) -> Optional[str]:
        return api_key or self._default_api_key

    def has_credential(self, api_key: Optional[str] = None) -> bool:
        return bool(self.resolve_key(api_key))

    async def generate(self, prompt: str, api_key: Optional[str] = None) -> AsyncIterator[str]:
        key = self.resolve_key(api_key)
        if not key:
            logger.warning("generation.missing_credential")
            yield ErrorFragment(GenerationErrorKind.MISSING_CREDENTIAL)
            return
        fragments = self._generator.stream(prompt, key)
        count = 0
        try:
            async for fragment in fragments:
                count += 1
                yield fragment
        except Exception as e:
            kind = classify_error(e)
            logger.warning("generation.failed", kind=kind.value, fragments=count, error=str(e))
            yield ErrorFragment(kind)
        finally:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()

    async def complete(self, prompt: str, api_key: Optional[str] = None, temperature: Optional[float] = None) -> str:
        """
        Non-streaming generation.
        Raises ConfigurationMissing, CredentialInvalid or ProviderTransient.
        """
        key = self.resolve_key(api_key)
        if not key:
            raise ConfigurationMissing("no generation credential configured")
        try:
            return await self._generator.complete(prompt, key, temperature=temperature)
        except Exception as e:
            kind = classify_error(e)
            logger.warning("generation.complete_failed", kind=kind.value, error=str(e))
            raise _to_exception(kind, e) from e

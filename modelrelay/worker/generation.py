"""Generation backends used by the worker agent."""

import asyncio
import re
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from modelrelay.exceptions import GenerationError, GenerationTimeout, ModelUnavailable
from modelrelay.logger import logger


DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TOP_P = 0.9
STOP_SEQUENCES = ["```", "Human:", "User:"]

_ASSISTANT_PREFIX = re.compile(r"^(Here's|Here is|The code is|The implementation is).*?:\s*", re.IGNORECASE)
_FENCE = re.compile(r"```[\w]*\n?")
_LEADING_BLOCK_COMMENT = re.compile(r"^\s*/\*[\s\S]*?\*/\s*")
_LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)


class Generator(Protocol):
    """Anything that turns a prompt into generated text."""

    async def generate(self, model: str, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        ...

    async def list_models(self) -> List[str]:
        ...


def clean_generated_text(text: str) -> str:
    """Strip chat framing and comments from model output, leaving bare code."""
    text = _ASSISTANT_PREFIX.sub("", text)
    text = _FENCE.sub("", text)
    text = _LEADING_BLOCK_COMMENT.sub("", text)
    text = _LINE_COMMENT.sub("", text)
    return text.strip()


class OllamaGenerator:
    """Generation against a local Ollama HTTP API."""

    def __init__(self, base_url: str = "http://localhost:11434", timeout: float = 60.0, pull_timeout: float = 600.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.pull_timeout = pull_timeout

    async def list_models(self) -> List[str]:
        """Names of the models installed locally."""
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
            async with session.get(f"{self.base_url}/api/tags") as response:
                response.raise_for_status()
                data = await response.json()
        return [m.get("name") for m in data.get("models") or [] if m.get("name")]

    async def ensure_model_available(self, model: str) -> None:
        """Pull ``model`` when it is not installed yet.

        Raises:
            ModelUnavailable: the model is missing and could not be pulled.
        """
        try:
            installed = await self.list_models()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ModelUnavailable(detail=f"Cannot list models at {self.base_url}: {e}") from e

        if model in installed:
            return

        logger.info(f"Model {model} not found, pulling...")
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.pull_timeout)) as session:
                async with session.post(
                    f"{self.base_url}/api/pull", json={"model": model, "stream": False}
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise ModelUnavailable(detail=f"Pull of {model} failed ({response.status}): {error_text}")
                    await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ModelUnavailable(detail=f"Pull of {model} failed: {e}") from e

        logger.info(f"Model {model} pulled")

    async def generate(self, model: str, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        """Run one non-streaming completion and return the cleaned text.

        Raises:
            ModelUnavailable: the model could not be made available.
            GenerationTimeout: Ollama did not answer within ``timeout``.
            GenerationError: any other HTTP failure or an empty response.
        """
        options = options or {}
        await self.ensure_model_available(model)

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.get("temperature", DEFAULT_TEMPERATURE),
                "top_p": DEFAULT_TOP_P,
                "num_predict": options.get("maxTokens", options.get("max_tokens", DEFAULT_MAX_TOKENS)),
                "stop": STOP_SEQUENCES,
            },
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(f"{self.base_url}/api/generate", json=payload) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise GenerationError(detail=f"Ollama error ({response.status}): {error_text}")
                    data = await response.json()
        except asyncio.TimeoutError as e:
            raise GenerationTimeout(detail=f"No response from {model} within {self.timeout:g}s") from e
        except aiohttp.ClientError as e:
            raise GenerationError(detail=f"Network error talking to Ollama: {e}") from e

        text = (data or {}).get("response")
        if not text:
            raise GenerationError(detail="No response from Ollama")

        return clean_generated_text(text)

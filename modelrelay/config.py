import os
import uuid
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .ws.retry_config import RetryConfig

load_dotenv(".env")


def _env_int(*keys: str, default: int) -> int:
    for key in keys:
        value = os.getenv(key)
        if value:
            return int(value)
    return default


class GenerationOptions(BaseModel):
    temperature: float = Field(0.3, description="Sampling temperature")
    max_tokens: int = Field(2000, alias="maxTokens", description="Maximum number of generated tokens")

    class Config:
        populate_by_name = True

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class BrokerSettings(BaseModel):
    # Network
    host: str = Field(default_factory=lambda: os.getenv("BROKER_HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: _env_int("BROKER_PORT", "PORT", default=3000))
    api_port: int = Field(
        default_factory=lambda: _env_int("BROKER_API_PORT", default=3001),
        description="Port of the HTTP status surface",
    )

    # Endpoints
    client_paths: List[str] = Field(default_factory=lambda: ["/", "/ws"])
    worker_path: str = Field(default="/worker")
    legacy_worker_paths: List[str] = Field(default_factory=lambda: ["/ollama"])

    # Request lifecycle
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "60")),
        description="Seconds a dispatched request may wait for a worker reply",
    )
    default_model: str = Field(default_factory=lambda: os.getenv("DEFAULT_CLIENT_MODEL", "qwen-coder"))
    generation_options: GenerationOptions = Field(default_factory=GenerationOptions)
    preview_length: int = Field(100, description="Length of the original content preview echoed to clients")

    # Idle connection reaping
    reaper_interval: float = Field(60.0, description="Seconds between idle sweeps")
    idle_timeout: float = Field(300.0, description="Seconds of inactivity before a connection is evicted")


class WorkerSettings(BaseModel):
    broker_url: str = Field(default_factory=lambda: os.getenv("BROKER_URL", "ws://localhost:3000"))
    worker_path: str = Field(default="/worker")
    worker_id: str = Field(default_factory=lambda: os.getenv("WORKER_ID") or str(uuid.uuid4()))

    # Local model runtime
    ollama_url: str = Field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    default_model: str = Field(default_factory=lambda: os.getenv("DEFAULT_MODEL", "qwen3:latest"))
    model_aliases: Dict[str, str] = Field(
        default_factory=lambda: {
            "qwen-coder": "qwen3:latest",
            "codellama": "llama3.1:8b",
            "deepseek-coder": "llama3.1:8b",
            "codegemma": "llama3.1:8b",
        },
        description="Advertised model name -> local model name",
    )
    generation_timeout: float = Field(60.0, description="Seconds before a generation call is abandoned")

    # Local status API
    api_host: str = Field(default_factory=lambda: os.getenv("WORKER_API_HOST", "0.0.0.0"))
    api_port: int = Field(
        default_factory=lambda: _env_int("WORKER_API_PORT", default=11435),
        description="Port of the worker health and status surface",
    )

    # Connection upkeep
    heartbeat_interval: float = Field(30.0, description="Seconds between heartbeats while active")
    startup_delay: float = Field(0.0, description="Seconds to wait before the first connect")
    retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(
            max_attempts=10,
            initial_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2.0,
            jitter_factor=0.0,
        )
    )

    @property
    def endpoint(self) -> str:
        """Broker URL with the worker path appended when missing."""
        url = self.broker_url.rstrip("/")
        if url.endswith(self.worker_path) or url.endswith("/ollama"):
            return url
        return f"{url}{self.worker_path}"

    @property
    def capabilities(self) -> List[str]:
        return list(self.model_aliases.keys())

    def resolve_model(self, model: Optional[str]) -> str:
        """Map an advertised model name to the local model, falling back to the default."""
        if model and model in self.model_aliases:
            return self.model_aliases[model]
        return self.default_model


class Settings(BaseModel):
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)


# Create singleton instance
settings = Settings()

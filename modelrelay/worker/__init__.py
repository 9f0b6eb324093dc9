"""Worker agent connecting a local model runtime to the broker."""

from .agent import AgentState, WorkerAgent
from .generation import Generator, OllamaGenerator, clean_generated_text
from .prompt import ContentKind, build_prompt, classify_content

__all__ = [
    "AgentState",
    "WorkerAgent",
    "Generator",
    "OllamaGenerator",
    "clean_generated_text",
    "ContentKind",
    "build_prompt",
    "classify_content",
]

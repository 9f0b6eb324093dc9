"""Prompt construction for code generation requests."""

import re
from enum import Enum


class ContentKind(str, Enum):
    """What the submitted text most likely is."""

    ERROR = "error"               # Error message or failing code
    CODE = "code"                 # Source code to improve
    DESCRIPTION = "description"   # Prose requirement to implement


ERROR_KEYWORDS = ("error", "exception", "failed", "traceback")

CODE_PATTERNS = [
    re.compile(r"function\s+\w+", re.IGNORECASE),
    re.compile(r"class\s+\w+", re.IGNORECASE),
    re.compile(r"def\s+\w+", re.IGNORECASE),
    re.compile(r"const\s+\w+\s*=", re.IGNORECASE),
    re.compile(r"let\s+\w+\s*=", re.IGNORECASE),
    re.compile(r"var\s+\w+\s*=", re.IGNORECASE),
    re.compile(r"import\s+.*from", re.IGNORECASE),
    re.compile(r"\{[\s\S]*\}"),
    re.compile(r"\[[\s\S]*\]"),
    re.compile(r".*\(\s*\)\s*{"),
    re.compile(r".*;$", re.MULTILINE),
]

# Minimum number of matching patterns for text to count as code
CODE_PATTERN_THRESHOLD = 2

BASE_PROMPT = """You are an expert programmer. Your task is to analyze the provided content and generate clean, functional code.

Rules:
- Only return code, no explanations or markdown
- Ensure the code is syntactically correct
- Follow best practices for the detected language
- If fixing errors, provide the corrected version
- If enhancing code, improve efficiency and readability"""

TEMPLATES = {
    ContentKind.ERROR: (
        "The user has copied an error message or problematic code. "
        "Please provide the corrected version:\n\n{content}\n\nFixed code:"
    ),
    ContentKind.CODE: (
        "The user has copied some code. Please optimize and improve it:\n\n{content}\n\nImproved code:"
    ),
    ContentKind.DESCRIPTION: (
        "The user has copied a description or requirement. "
        "Please implement it as code:\n\n{content}\n\nImplementation:"
    ),
}


def classify_content(text: str) -> ContentKind:
    """Guess whether ``text`` is an error report, code, or a description."""
    lowered = text.lower()
    if any(keyword in lowered for keyword in ERROR_KEYWORDS):
        return ContentKind.ERROR

    matches = sum(1 for pattern in CODE_PATTERNS if pattern.search(text))
    if matches >= CODE_PATTERN_THRESHOLD:
        return ContentKind.CODE

    return ContentKind.DESCRIPTION


def build_prompt(text: str) -> str:
    """Wrap submitted text in the generation template for its kind."""
    kind = classify_content(text)
    return f"{BASE_PROMPT}\n\n{TEMPLATES[kind].format(content=text)}"

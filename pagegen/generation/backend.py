"""
Generation backend: turns a rendered prompt into page copy.

The worker treats this as an opaque text-completion service. Any
exception raised from `generate` is recorded as the page's error.
"""

import json
import re
import time
from dataclasses import dataclass
from typing import Dict, Any, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from pagegen.config import config

# Pages without a parseable sections list are counted as the standard three
DEFAULT_SECTION_COUNT = 3

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass
class GenerationResult:
    """Result of one backend call."""
    content: str
    model_name: str
    duration_ms: int
    word_count: int
    section_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model_name": self.model_name,
            "duration_ms": self.duration_ms,
            "word_count": self.word_count,
            "section_count": self.section_count,
        }


def count_words(text: str) -> int:
    return len(text.split())


def parse_page_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse the JSON object a page prompt asks for, tolerating code fences."""
    cleaned = _FENCE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def summarize_output(text: str) -> Dict[str, int]:
    """Word and section counts for generated copy."""
    parsed = parse_page_json(text)
    if parsed is None:
        return {"word_count": count_words(text), "section_count": DEFAULT_SECTION_COUNT}

    sections = parsed.get("sections")
    return {
        "word_count": count_words(str(parsed.get("body") or "")),
        "section_count": len(sections) if isinstance(sections, list) and sections else DEFAULT_SECTION_COUNT,
    }


class GenerationBackend:
    """
    Claude-backed page writer.

    Usage:
        backend = GenerationBackend()
        result = await backend.generate(prompt)
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.model_name = model_name or config.MODEL_NAME
        self.llm = ChatAnthropic(
            model=self.model_name,
            temperature=config.TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or config.MAX_TOKENS,
            anthropic_api_key=config.ANTHROPIC_API_KEY,
            timeout=config.GENERATION_TIMEOUT_SECONDS,
        )

    async def generate(self, prompt: str) -> GenerationResult:
        """Call the model once. Raises on any backend error or empty output."""
        start_time = time.time()

        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        text = response.content if isinstance(response.content, str) else "".join(
            block.get("text", "") for block in response.content if isinstance(block, dict)
        )
        text = text.strip()
        if not text:
            raise ValueError("Generation backend returned empty content")

        stats = summarize_output(text)
        return GenerationResult(
            content=text,
            model_name=self.model_name,
            duration_ms=int((time.time() - start_time) * 1000),
            word_count=stats["word_count"],
            section_count=stats["section_count"],
        )

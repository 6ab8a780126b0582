"""Prompt rendering and the generation backend."""

from .backend import GenerationBackend, GenerationResult, summarize_output
from .prompts import render_template, build_variables

__all__ = [
    "GenerationBackend",
    "GenerationResult",
    "summarize_output",
    "render_template",
    "build_variables",
]

"""
Localized page generation pipeline.

Jobs fan out into pages, pages are dispatched through Redis Queue and
claimed by workers, and job counters roll up to a single finalization.
"""

__version__ = "1.0.0"

"""
Job fan-out: content axis × location axis → page work items.

Pure functions over rows already read from the store, shared by job
creation and preview so both always agree on what a job would contain.
"""

import math
import re
import unicodedata
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List

from .models import PageType, PageStatus

PREVIEW_DEFAULT_LIMIT = 50
PREVIEW_MAX_LIMIT = 200


# =============================================================================
# SLUGS
# =============================================================================

def to_slug(value: str) -> str:
    """Lowercase ASCII slug: 'Café Déjà Vu' → 'cafe-deja-vu'."""
    text = unicodedata.normalize("NFD", (value or "").strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "-", text)
    return text.strip("-")


def to_city_state_slug(city: str, state: str) -> str:
    return f"{to_slug(city)}-{(state or '').lower()}"


def build_url_path(page_type: PageType, content_slug: str, area_slug: str) -> str:
    path = f"/{content_slug}/{area_slug}"
    return f"/blog{path}" if page_type.is_blog else path


# =============================================================================
# AXES
# =============================================================================

@dataclass
class ContentItem:
    slug: str
    text: str
    language: str = "en"


@dataclass
class AreaItem:
    slug: str
    city: str
    state: str
    status: str = "active"


def extract_services(questionnaire: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Service offerings from questionnaire data, each with a slug."""
    offerings = (questionnaire.get("services") or {}).get("offerings") or []
    services = []
    for offering in offerings:
        name = (offering.get("name") or "").strip()
        if not name:
            continue
        services.append({**offering, "name": name, "slug": offering.get("slug") or to_slug(name)})
    return services


def keyword_axis(keywords: List[Dict[str, Any]]) -> List[ContentItem]:
    items = []
    for kw in keywords:
        text = kw.get("keyword") or ""
        language = kw.get("language") or "en"
        items.append(ContentItem(
            slug=kw.get("slug") or to_slug(text),
            text=text,
            language=language if language in ("en", "es") else "en",
        ))
    return items


def service_axis(services: List[Dict[str, Any]]) -> List[ContentItem]:
    # Service pages are always English; nameEs is display-only
    return [ContentItem(slug=s["slug"], text=s["name"], language="en") for s in services]


def service_area_axis(service_areas: List[Dict[str, Any]]) -> List[AreaItem]:
    return [
        AreaItem(
            slug=to_city_state_slug(area["city"], area["state"]),
            city=area["city"],
            state=area["state"],
        )
        for area in service_areas
    ]


def location_axis(locations: List[Dict[str, Any]]) -> List[AreaItem]:
    return [
        AreaItem(
            slug=to_city_state_slug(loc["city"], loc["state"]),
            city=loc["city"],
            state=loc["state"],
            status=loc.get("status") or "active",
        )
        for loc in locations
    ]


# =============================================================================
# PAGE SPECS
# =============================================================================

@dataclass
class PageSpec:
    """One page a job would create, before it has ids."""
    keyword_slug: str
    keyword_text: str
    keyword_language: str
    service_area_slug: str
    city: str
    state: str
    location_status: str
    url_path: str

    def to_row(self, page_id: str, job_id: str, business_id: str, page_type: PageType, now: str) -> Dict[str, Any]:
        return {
            "id": page_id,
            "job_id": job_id,
            "business_id": business_id,
            "page_type": page_type.value,
            **asdict(self),
            "status": PageStatus.QUEUED.value,
            "worker_id": None,
            "attempts": 0,
            "claimed_at": None,
            "completed_at": None,
            "dispatched_at": now,
            "content": None,
            "error_message": None,
            "section_count": None,
            "model_name": None,
            "prompt_version": None,
            "generation_duration_ms": None,
            "word_count": None,
            "created_at": now,
        }


def build_page_specs(
    page_type: PageType,
    keywords: List[Dict[str, Any]],
    service_areas: List[Dict[str, Any]],
    locations: List[Dict[str, Any]],
    services: List[Dict[str, Any]],
) -> List[PageSpec]:
    """
    Cartesian product of the page type's two axes.

    Pairs whose url_path repeats one already produced (same slug on two
    keywords, or two locations in one city) are emitted once.
    """
    if page_type.content_axis == "service":
        content = service_axis(services)
    else:
        content = keyword_axis(keywords)

    if page_type.location_axis == "location":
        areas = location_axis(locations)
    else:
        areas = service_area_axis(service_areas)

    specs: List[PageSpec] = []
    seen_paths = set()
    for item in content:
        for area in areas:
            url_path = build_url_path(page_type, item.slug, area.slug)
            if url_path in seen_paths:
                continue
            seen_paths.add(url_path)
            specs.append(PageSpec(
                keyword_slug=item.slug,
                keyword_text=item.text,
                keyword_language=item.language,
                service_area_slug=area.slug,
                city=area.city,
                state=area.state,
                location_status=area.status,
                url_path=url_path,
            ))
    return specs


# =============================================================================
# PREVIEW
# =============================================================================

def clamp_limit(limit: Optional[int]) -> int:
    if not limit:
        return PREVIEW_DEFAULT_LIMIT
    return max(1, min(int(limit), PREVIEW_MAX_LIMIT))


def matches_search(row: Dict[str, Any], search: str) -> bool:
    needle = search.strip().lower()
    return any(
        needle in (row.get(field) or "").lower()
        for field in ("keyword_text", "url_path", "city", "state")
    )


def filter_rows(
    rows: List[Dict[str, Any]],
    language: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Language (en/es) and free-text filters shared by preview and page listing."""
    if language in ("en", "es"):
        rows = [r for r in rows if r.get("keyword_language") == language]
    if search and search.strip():
        rows = [r for r in rows if matches_search(r, search)]
    return rows


def paginate(rows: List[Any], page: int, limit: Optional[int]) -> Dict[str, Any]:
    limit = clamp_limit(limit)
    page = max(1, page or 1)
    offset = (page - 1) * limit
    total = len(rows)
    return {
        "items": rows[offset:offset + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


def preview_pages(
    specs: List[PageSpec],
    search: Optional[str] = None,
    language: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Filtered, paginated view of the pages a job would create.

    The summary always describes the full unfiltered set.
    """
    rows = [asdict(spec) for spec in specs]
    result = paginate(filter_rows(rows, language, search), page, limit)

    return {
        "pages": result["items"],
        "pagination": result["pagination"],
        "summary": {
            "total_pages": len(rows),
            "unique_keywords": len({r["keyword_slug"] for r in rows}),
            "unique_service_areas": len({r["service_area_slug"] for r in rows}),
            "by_language": {
                "en": sum(1 for r in rows if r["keyword_language"] == "en"),
                "es": sum(1 for r in rows if r["keyword_language"] == "es"),
            },
        },
    }

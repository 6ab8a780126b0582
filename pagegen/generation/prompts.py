"""
Prompt building for page generation.

Templates are stored by the CRUD layer and use `{{variable}}`
placeholders. Unknown placeholders are left in place so a template
author can see what did not resolve.
"""

import re
from datetime import datetime, timezone
from typing import Dict, Any, List

VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# Default body length target handed to templates
DEFAULT_WORD_COUNT = "400"


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Substitute `{{name}}` placeholders (case-insensitive keys)."""
    def _replace(match: re.Match) -> str:
        value = variables.get(match.group(1).lower())
        return value if value is not None else match.group(0)

    return VARIABLE_PATTERN.sub(_replace, template)


def unresolved_variables(prompt: str) -> List[str]:
    """Placeholder names still present after rendering."""
    return VARIABLE_PATTERN.findall(prompt)


def _years_since(year: str) -> str:
    if len(year) == 4 and year.isdigit():
        return str(datetime.now(timezone.utc).year - int(year))
    return ""


def _joined(value: Any) -> str:
    return ", ".join(str(v) for v in value) if isinstance(value, list) else ""


def build_variables(
    page: Dict[str, Any],
    business: Dict[str, Any],
    questionnaire: Dict[str, Any],
) -> Dict[str, str]:
    """
    Collect every template variable for one page.

    Sources are the page row (keyword and location), the business
    profile and the questionnaire blob.
    """
    identity = questionnaire.get("identity") or {}
    audience = questionnaire.get("audience") or {}
    brand = questionnaire.get("brand") or {}
    offerings = (questionnaire.get("services") or {}).get("offerings") or []

    primary = next((s for s in offerings if s.get("isPrimary")), offerings[0] if offerings else {})

    language = "es" if page.get("keyword_language") == "es" else "en"
    keyword = page.get("keyword_text") or (page.get("keyword_slug") or "").replace("-", " ")
    year_established = str(identity.get("yearEstablished") or "")

    return {
        # Business
        "business_name": business.get("name") or "",
        "industry": business.get("industry") or "",
        "industry_type": business.get("industry_type") or "",
        "phone": business.get("phone") or "",
        "email": business.get("email") or "",
        "website": business.get("website") or "",
        "gbp_url": business.get("gbp_url") or "",
        "primary_city": business.get("primary_city") or "",
        "primary_state": business.get("primary_state") or "",

        # Page
        "city": page.get("city") or "",
        "state": page.get("state") or "",
        "keyword": keyword,
        "primary_keyword": page.get("keyword_text") or "",
        "url_path": page.get("url_path") or "",
        "page_type": page.get("page_type") or "",

        # Questionnaire
        "tagline": str(identity.get("tagline") or ""),
        "year_established": year_established,
        "years_experience": _years_since(year_established),
        "owner_name": str(identity.get("ownerName") or ""),
        "target_audience": str(audience.get("targetDescription") or ""),
        "languages": _joined(audience.get("languages")),
        "voice_tone": str(brand.get("voiceTone") or ""),
        "tone": str(brand.get("voiceTone") or ""),
        "cta_text": str(brand.get("callToAction") or ""),
        "forbidden_terms": _joined(brand.get("forbiddenTerms")),
        "service_type": str(questionnaire.get("serviceType") or ""),
        "primary_service": primary.get("name") or "",
        "primary_service_es": primary.get("nameEs") or "",
        "services_list": ", ".join(s.get("name", "") for s in offerings),

        # Language
        "language": language,
        "output_language": "Spanish" if language == "es" else "English",
        "word_count": DEFAULT_WORD_COUNT,
    }

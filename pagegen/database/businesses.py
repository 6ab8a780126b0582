"""
Business Data Service

Read-only access to data owned by the CRUD layer: businesses, keywords,
service areas, store locations, questionnaires and prompt templates.
The pipeline never writes these tables.
"""

from typing import Optional, Dict, Any, List

from supabase import Client

from .client import get_supabase_admin_client

# Location statuses that still get pages (coming-soon stores are pre-announced)
PAGE_LOCATION_STATUSES = ["active", "coming-soon"]


class BusinessDataService:
    """Read-only queries for the inputs of a generation job."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def get_business(self, business_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table("businesses")
            .select("*")
            .eq("id", business_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def get_keywords(self, business_id: str) -> List[Dict[str, Any]]:
        """Keywords in the order the CRUD layer lists them (newest first)."""
        result = (
            self.client.table("keywords")
            .select("*")
            .eq("business_id", business_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data

    async def get_service_areas(self, business_id: str) -> List[Dict[str, Any]]:
        result = (
            self.client.table("service_areas")
            .select("*")
            .eq("business_id", business_id)
            .order("priority", desc=True)
            .execute()
        )
        return result.data

    async def get_page_locations(self, business_id: str) -> List[Dict[str, Any]]:
        """Store locations that get pages: active or coming-soon, excluding headquarters."""
        result = (
            self.client.table("locations")
            .select("*")
            .eq("business_id", business_id)
            .in_("status", PAGE_LOCATION_STATUSES)
            .eq("is_headquarters", False)
            .order("priority", desc=True)
            .execute()
        )
        return result.data

    async def get_questionnaire(self, business_id: str) -> Dict[str, Any]:
        """Questionnaire `data` blob, or an empty dict."""
        result = (
            self.client.table("questionnaires")
            .select("*")
            .eq("business_id", business_id)
            .execute()
        )
        if not result.data:
            return {}
        return result.data[0].get("data") or {}

    async def get_active_prompt_template(
        self,
        business_id: str,
        page_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Highest-version active template for a page type, if any."""
        result = (
            self.client.table("prompt_templates")
            .select("*")
            .eq("business_id", business_id)
            .eq("page_type", page_type)
            .eq("is_active", True)
            .order("version", desc=True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

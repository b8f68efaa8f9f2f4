# src/sms_hub/db/client.py

"""
Supabase client factory.

Two access tiers share one project URL:
- public: anon key, row-level security applies
- admin:  service-role key, full access (server-side only)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from supabase import AsyncClient, acreate_client

from ..core.ports import TableClient

logger = logging.getLogger(__name__)

# Table used for the connectivity probe.
PROBE_TABLE = "countries"


@dataclass(frozen=True, slots=True)
class DatabaseClients:
    public: AsyncClient
    admin: AsyncClient


async def create_clients(settings) -> DatabaseClients:
    """Build both clients. Raises ValueError when URL or keys are missing."""
    url = settings.supabase_url
    if not url:
        raise ValueError("Supabase URL is not set (SMSHUB_SUPABASE_URL).")
    if not settings.supabase_anon_key:
        raise ValueError("Supabase anon key is not set (SMSHUB_SUPABASE_ANON_KEY).")
    if not settings.supabase_service_role_key:
        raise ValueError("Supabase service role key is not set (SMSHUB_SUPABASE_SERVICE_ROLE_KEY).")

    public = await acreate_client(url, settings.supabase_anon_key)
    admin = await acreate_client(url, settings.supabase_service_role_key)
    logger.info("Supabase clients created for %s", url)
    return DatabaseClients(public=public, admin=admin)


async def check_connection(client: TableClient) -> bool:
    """Cheap head query against the catalog table. Never raises."""
    try:
        await client.table(PROBE_TABLE).select("*", count=CountMethod.exact, head=True).execute()
    except (APIError, httpx.HTTPError) as exc:
        logger.error("Supabase connection check failed: %s", exc)
        return False
    logger.info("Supabase connection OK")
    return True

"""Team entitlement checks for channel ingestion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, cast

from supabase import Client

from src.ingestion.storage import run_db

logger = logging.getLogger(__name__)

TEAMS_TABLE = "teams"


@dataclass(frozen=True)
class EntitlementStatus:
    entitled: bool
    reason: str | None = None


class EntitlementChecker(Protocol):
    async def is_entitled(self, team_id: str, channel_id: str) -> EntitlementStatus: ...


class SupabaseEntitlementChecker:
    """Entitled when the team's subscription is active and Channel AI is on."""

    def __init__(self, client: Client) -> None:
        self.client = client

    async def is_entitled(self, team_id: str, channel_id: str) -> EntitlementStatus:
        result = await run_db(
            lambda: self.client.table(TEAMS_TABLE)
            .select("team_id,sub_status,has_channel_ai")
            .eq("team_id", team_id)
            .limit(1)
            .execute(),
            f"entitlement {team_id}",
        )
        rows = cast(list[dict[str, Any]], result.data)
        if not rows:
            return EntitlementStatus(False, "Team no longer exists.")
        team = rows[0]
        if team.get("sub_status") != "active":
            return EntitlementStatus(
                False, f"Subscription is not active (status: {team.get('sub_status')})."
            )
        if team.get("has_channel_ai") is not True:
            return EntitlementStatus(False, "Channel AI is not enabled for this team.")
        logger.debug("Team %s entitled for channel %s", team_id, channel_id)
        return EntitlementStatus(True)


class AllowAllEntitlementChecker:
    """Entitles every team; for local runs without a teams table."""

    async def is_entitled(self, team_id: str, channel_id: str) -> EntitlementStatus:
        return EntitlementStatus(True)

"""
Coolify platform client and pool service.

Coolify bots run in pre-provisioned pool slots: one Coolify application per slot,
borrowed by a bot and returned (reset to IDLE) afterwards. The client speaks the
Coolify REST API; BotPoolService ties an application to its slot row.

Stop and delete are idempotent: a 404 means the desired state already holds.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

import httpx

from ..bot_state import SlotStatus
from ..errors import CoolifyError

if TYPE_CHECKING:
    from ..database import DatabaseClient

logger = logging.getLogger(__name__)

DEFAULT_POOL_PREFIX = "pool-"


@dataclass
class CoolifyApplication:
    uuid: str
    name: str
    status: Optional[str] = None


def idle_description(now: Optional[datetime] = None) -> str:
    """Description tag shown in Coolify for a slot that is free to borrow."""
    now = now or datetime.now(timezone.utc)
    return f"[IDLE] Available - Last used: {now.isoformat()}"


class CoolifyClient:
    """Async client for the Coolify API (v1)."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        pool_prefix: str = DEFAULT_POOL_PREFIX,
        timeout_sec: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip('/')
        self.pool_prefix = pool_prefix
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=timeout_sec,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> Optional['CoolifyClient']:
        """Build a client from COOLIFY_* variables, or None if Coolify is not configured."""
        api_url = os.getenv("COOLIFY_API_URL")
        api_token = os.getenv("COOLIFY_API_TOKEN")
        if not api_url or not api_token:
            return None
        return cls(
            api_url=api_url,
            api_token=api_token,
            pool_prefix=os.getenv("COOLIFY_POOL_PREFIX", DEFAULT_POOL_PREFIX),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CoolifyError(f"Coolify request {method} {path} failed: {e}") from e

    async def list_pool_applications(self) -> List[CoolifyApplication]:
        """All applications belonging to the bot pool (matched by name prefix)."""
        response = await self._request("GET", "/applications")
        if response.status_code != 200:
            raise CoolifyError(
                f"Failed to list Coolify applications: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        apps = []
        for item in response.json():
            name = item.get('name') or ''
            if item.get('uuid') and name.startswith(self.pool_prefix):
                apps.append(CoolifyApplication(uuid=item['uuid'], name=name, status=item.get('status')))
        return apps

    async def stop_application(self, application_uuid: str) -> None:
        response = await self._request("GET", f"/applications/{application_uuid}/stop")
        if response.status_code == 404:
            logger.info(f"[Coolify] Application {application_uuid} not found, treating as stopped")
            return
        if response.is_error:
            raise CoolifyError(
                f"Failed to stop Coolify application {application_uuid}: {response.status_code}",
                status_code=response.status_code,
            )

    async def delete_application(self, application_uuid: str) -> None:
        response = await self._request(
            "DELETE",
            f"/applications/{application_uuid}",
            params={
                "delete_configurations": "true",
                "delete_volumes": "true",
                "docker_cleanup": "true",
            },
        )
        if response.status_code == 404:
            logger.info(f"[Coolify] Application {application_uuid} already deleted or not found")
            return
        if response.is_error:
            raise CoolifyError(
                f"Failed to delete Coolify application {application_uuid}: {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(f"[Coolify] Deleted application {application_uuid}")

    async def update_description(self, application_uuid: str, description: str) -> None:
        """Best-effort: the description is a display tag only, failures are logged."""
        try:
            response = await self._request(
                "PATCH", f"/applications/{application_uuid}", json={"description": description}
            )
            if response.is_error:
                logger.error(f"[Coolify] Failed to update description for {application_uuid}: {response.text}")
        except CoolifyError as e:
            logger.error(f"[Coolify] Error updating description for {application_uuid}: {e}")

    async def get_application_status(self, application_uuid: str) -> str:
        response = await self._request("GET", f"/applications/{application_uuid}")
        if response.is_error:
            raise CoolifyError(
                f"Failed to get Coolify application status for {application_uuid}: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json().get('status', 'unknown')


class BotPoolService:
    """Returns Coolify pool slots to the pool."""

    def __init__(self, db: 'DatabaseClient', coolify: CoolifyClient):
        self.db = db
        self.coolify = coolify

    async def reset_slot_to_idle(self, slot_id: int, application_uuid: str) -> None:
        """Stop the slot's container and make the slot available again."""
        await self.coolify.stop_application(application_uuid)

        now = datetime.now(timezone.utc)
        await self.db.update_slot(slot_id, {
            'status': SlotStatus.IDLE,
            'assigned_bot_id': None,
            'error_message': None,
            'recovery_attempts': 0,
            'last_used_at': now,
        })
        await self.coolify.update_description(application_uuid, idle_description(now))

    async def release_bot(self, bot_id: int) -> bool:
        """Release the slot held by a bot. Returns False if the bot held no slot."""
        slot = await self.db.get_slot_by_bot_id(bot_id)
        if slot is None:
            logger.info(f"[BotPool] Bot {bot_id} holds no pool slot, nothing to release")
            return False

        try:
            await self.reset_slot_to_idle(slot.id, slot.application_uuid)
        except Exception as e:
            logger.error(f"[BotPool] Error releasing slot {slot.slot_name}: {e}")
            # ERROR slots are picked up by the next recovery tick
            await self.db.update_slot(slot.id, {
                'status': SlotStatus.ERROR,
                'error_message': str(e),
            })
            raise

        logger.info(f"[BotPool] Released slot {slot.slot_name} from bot {bot_id}")
        return True

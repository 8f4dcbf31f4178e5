"""
User-level flows: registration, project and team listings, team creation
and handing resource keys to members who are waiting for them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from auth import registration_payload
from e2ee.exceptions import E2EEError
from e2ee.fields import decrypt_fields, encrypt_fields
from e2ee.keypair import KeyPair, KeyType

from .project import resolve_board_key
from .team import TeamSession
from .transport import Transport

logger = logging.getLogger(__name__)

PENDING_NAME = "Membership pending"


@dataclass
class DistributionResult:
    """Outcome of granting one pending member their key."""
    success: bool
    user_id: str
    board_id: Optional[str] = None
    organisation_id: Optional[str] = None
    error: Optional[str] = None


class UserClient:
    """Operations on behalf of the logged-in user."""

    def __init__(self, transport: Transport, key_pair: KeyPair):
        self.transport = transport
        self.key_pair = key_pair

    async def register(self, email: str, **params) -> Any:
        """Register a new account for this (EC) key pair."""
        return await self.transport.post(
            "/users/register", registration_payload(self.key_pair, email, **params)
        )

    async def get_projects(self) -> list[dict[str, Any]]:
        """
        List the user's projects, decrypted.

        Projects whose key has not been handed over yet are returned with a
        placeholder name instead.
        """
        projects = await self.transport.get("/me/boards") or []

        decrypted = []
        for project in projects:
            if not project.get("encryptedKey") and not project.get("privateKey"):
                decrypted.append({**project, "name": PENDING_NAME})
                continue
            key = resolve_board_key(project, self.key_pair)
            decrypted.append(decrypt_fields(project, key))
        return decrypted

    async def get_teams(self) -> list[dict[str, Any]]:
        """List the user's organisations, decrypted."""
        teams = await self.transport.get("/me/organisations") or []

        decrypted = []
        for team in teams:
            if not team.get("encryptedKey"):
                decrypted.append({**team, "name": PENDING_NAME})
                continue
            key = self.key_pair.unwrap_key(team["encryptedKey"], team.get("keyType"))
            decrypted.append(decrypt_fields(team, key))
        return decrypted

    async def create_team(self, team: dict[str, Any]) -> Any:
        """Create an organisation with a fresh EC key wrapped to the user."""
        team_key = KeyPair.generate()
        body = encrypt_fields(
            {
                **team,
                "encryptedKey": self.key_pair.wrap_key(team_key),
                "publicKey": self.key_pair.public_key,
                "keyType": KeyType.EC.value,
            },
            team_key,
        )
        return await self.transport.post("/organisations", body)

    async def load_team(self, organisation_id: str) -> tuple[dict[str, Any], TeamSession]:
        """
        Open an organisation.

        Returns:
            (decrypted organisation, loaded session holding the organisation key)
        """
        session = TeamSession(self.transport, self.key_pair, organisation_id)
        return await session.load(), session

    async def _grant(self, membership: dict[str, Any]) -> DistributionResult:
        user_id = membership["userId"]
        board_id = membership.get("boardId")
        organisation_id = membership.get("organisationId")

        try:
            if membership.get("organisationKeyType"):
                resource_key = self.key_pair.unwrap_key(
                    membership["encryptedKey"], membership["organisationKeyType"]
                )
                path = f"/organisations/{organisation_id}/members/{user_id}"
                board_id = None
            else:
                resource_key = self.key_pair.unwrap_key(
                    membership["encryptedKey"], membership.get("boardKeyType")
                )
                path = f"/boards/{board_id}/members/{user_id}"
                if organisation_id:
                    path = f"/organisations/{organisation_id}{path}"

            wrapped = KeyPair.wrap_with_public_key(
                membership["userKeyType"], membership["publicKey"], resource_key
            )
            await self.transport.put(path, {"encryptedKey": wrapped})
        except (E2EEError, KeyError) as e:
            logger.error(f"Could not hand key to user {user_id}: {e}")
            return DistributionResult(
                success=False,
                user_id=user_id,
                board_id=board_id,
                organisation_id=organisation_id,
                error=str(e),
            )

        logger.info(f"Handed key to user {user_id}")
        return DistributionResult(
            success=True, user_id=user_id, board_id=board_id, organisation_id=organisation_id
        )

    async def distribute_keys(self) -> list[DistributionResult]:
        """
        Grant every pending member the resource key they are waiting for.

        Each grant runs independently; one failure does not stop the others.
        """
        pending = await self.transport.get("/boards/pending_memberships") or []
        if not pending:
            return []

        logger.info(f"Distributing keys to {len(pending)} pending members")
        return list(await asyncio.gather(*(self._grant(m) for m in pending)))

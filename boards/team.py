"""
Organisation (team) sessions.

Organisation records are encrypted under the organisation's EC key pair,
which each employee holds wrapped to their own key pair.
"""

import logging
from enum import Enum
from typing import Any, Optional, Union

from e2ee.exceptions import KeyMaterialError
from e2ee.fields import decrypt_fields, encrypt_fields
from e2ee.keypair import KeyPair

from .project import resolve_board_key
from .transport import Transport

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Organisation member roles."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


class TeamSession:
    """Reads and writes one organisation through the field encryption engine."""

    def __init__(self, transport: Transport, key_pair: KeyPair, organisation_id: str):
        self.transport = transport
        self.key_pair = key_pair
        self.organisation_id = organisation_id
        self.team_key: Optional[KeyPair] = None

    def _path(self, path: str) -> str:
        return f"/organisations/{self.organisation_id}{path}"

    def _require_key(self) -> KeyPair:
        if self.team_key is None:
            raise KeyMaterialError("No key pair for this organisation, must load before use")
        return self.team_key

    async def load(self) -> dict[str, Any]:
        """
        Fetch the organisation and unwrap its key from the user's employee record.

        Raises:
            KeyMaterialError: If the user has no employee record with a key
            WrapError: If the organisation key cannot be unwrapped
        """
        organisation = await self.transport.get(self._path(""))
        if not organisation:
            raise KeyMaterialError(f"Organisation {self.organisation_id} not found")

        employee = organisation.pop("employee", None) or {}
        if not employee.get("encryptedKey"):
            raise KeyMaterialError("No organisation key for this user")

        self.team_key = self.key_pair.unwrap_key(employee["encryptedKey"], organisation.get("keyType"))
        logger.debug(f"Loaded organisation {self.organisation_id}")
        return decrypt_fields(organisation, self.team_key)

    async def encrypted_fetch(self, path: str, method: str, body: Any = None) -> Any:
        """Send a request encrypted under the organisation key and decrypt the response."""
        key = self._require_key()
        result = await self.transport.request(
            self._path(path),
            method,
            encrypt_fields(body, key) if body is not None else None,
        )
        if result is None:
            return None
        return decrypt_fields(result, key)

    async def get(self, path: str) -> Any:
        return await self.encrypted_fetch(path, "GET")

    async def put(self, path: str, data: Any) -> Any:
        return await self.encrypted_fetch(path, "PUT", data)

    async def post(self, path: str, data: Any) -> Any:
        return await self.encrypted_fetch(path, "POST", data)

    async def delete(self, path: str) -> Any:
        return await self.encrypted_fetch(path, "DELETE")

    async def get_projects(self) -> list[dict[str, Any]]:
        """
        List the organisation's projects, decrypted with the user's board keys.

        Projects the user holds no key for are returned untouched.
        """
        projects = await self.transport.get(self._path("/boards")) or []

        decrypted = []
        for project in projects:
            if not project.get("encryptedKey") and not project.get("privateKey"):
                decrypted.append(project)
                continue
            key = resolve_board_key(project, self.key_pair)
            decrypted.append(decrypt_fields(project, key))
        return decrypted

    # Member records carry no encrypted fields on the way in
    async def add_member(self, email: str, role: Union[str, Role] = Role.MEMBER) -> Any:
        return await self.transport.post(self._path("/members"), {"email": email, "role": Role(role).value})

    async def get_members(self) -> list[dict[str, Any]]:
        return await self.get("/members") or []

    async def remove_member(self, user_id: str) -> Any:
        return await self.transport.delete(self._path(f"/members/{user_id}"))

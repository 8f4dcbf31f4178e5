"""
Encrypted access to a single project (board).

Resolves the board's resource key from the caller's membership, encrypts
request bodies and decrypts responses with it, and brings stored data up
to date by running pending migrations on load.
"""

import base64
import binascii
import logging
from typing import Any, Optional

from e2ee import symmetric
from e2ee.exceptions import KeyMaterialError
from e2ee.fields import decrypt_fields, encrypt_fields
from e2ee.keypair import BoardKeyType, KeyPair
from e2ee.symmetric import ResourceKey, SymmetricKey

from .migrations import MIGRATIONS, MigrationContext, MigrationRunner
from .transport import Transport

logger = logging.getLogger(__name__)


def resolve_board_key(membership: dict[str, Any], key_pair: Optional[KeyPair]) -> ResourceKey:
    """
    Work out a board's resource key from a membership record.

    A public board carries its exported key in `privateKey`; a member's
    `encryptedKey` is unwrapped with their own key pair and wins when present.

    Raises:
        KeyMaterialError: If the membership holds no usable key
        WrapError: If the wrapped key cannot be unwrapped
    """
    encrypted_key = membership.get("encryptedKey")
    private_key = membership.get("privateKey")
    key_type = membership.get("keyType")

    if not encrypted_key and not private_key:
        raise KeyMaterialError("No key found for this board")

    board_key: Optional[ResourceKey] = None

    # board is public
    if private_key:
        if key_type == BoardKeyType.EC:
            board_key = KeyPair.from_private_key(private_key)
        else:
            try:
                raw = base64.b64decode(private_key, validate=True)
            except (binascii.Error, ValueError) as e:
                raise KeyMaterialError(f"Invalid public board key encoding: {e}") from e
            board_key = symmetric.import_key(raw)

    if encrypted_key and key_pair is not None:
        board_key = key_pair.unwrap_key(encrypted_key, key_type)

    if board_key is None:
        raise KeyMaterialError("No key found for this board!")
    return board_key


class ProjectSession:
    """Reads and writes one project through the field encryption engine."""

    def __init__(
        self,
        transport: Transport,
        key_pair: Optional[KeyPair],
        project_id: str,
        organisation_id: Optional[str] = None,
        runner: Optional[MigrationRunner] = None,
    ):
        """
        Args:
            transport: Authenticated transport to the backend
            key_pair: The user's key pair, or None for anonymous access to public boards
            project_id: Board id
            organisation_id: Owning organisation, if any
            runner: Migration runner (defaults to the shipped migrations)
        """
        self.transport = transport
        self.key_pair = key_pair
        self.project_id = project_id
        self.organisation_id = organisation_id
        self.runner = runner or MigrationRunner()
        self.board_key: Optional[ResourceKey] = None

    @staticmethod
    async def create_project(
        transport: Transport,
        key_pair: KeyPair,
        project: dict[str, Any],
        organisation_id: Optional[str] = None,
        key_type: BoardKeyType = BoardKeyType.EC,
    ) -> Any:
        """
        Create a project with a fresh resource key wrapped to the creator.

        Args:
            transport: Authenticated transport
            key_pair: Creator's key pair
            project: Project fields; `public: True` also publishes the exported key
            organisation_id: Create inside this organisation
            key_type: EC (key pair) or AES-CBC (symmetric) resource key
        """
        board: dict[str, Any] = {
            **project.get("board", {}),
            "lastRunMigration": len(MIGRATIONS),
            "keyType": BoardKeyType(key_type).value,
        }

        if key_type == BoardKeyType.AES_CBC:
            board_key: ResourceKey = symmetric.generate()
            board["encryptedKey"] = key_pair.wrap_key(board_key)
            if project.get("public"):
                board["privateKey"] = base64.b64encode(symmetric.export_key(board_key)).decode("ascii")
        else:
            board_key = KeyPair.generate()
            exported = board_key.export()
            board["publicKey"] = board_key.public_key
            board["encryptedKey"] = key_pair.wrap_key(board_key)
            if project.get("public"):
                board["privateKey"] = exported

        path = "/boards/"
        if organisation_id:
            path = f"/organisations/{organisation_id}{path}"

        logger.info(f"Creating project with {board['keyType']} key")
        return await transport.post(path, encrypt_fields({**project, "board": board}, board_key))

    def _path(self, path: str) -> str:
        prefixed = f"/boards/{self.project_id}{path}"
        if self.organisation_id:
            prefixed = f"/organisations/{self.organisation_id}{prefixed}"
        return prefixed

    def _require_key(self) -> ResourceKey:
        if self.board_key is None:
            raise KeyMaterialError("No key pair for this project, must initialise before use")
        return self.board_key

    async def encrypted_fetch(self, path: str, method: str, body: Any = None) -> Any:
        """Send an encrypted request and decrypt the response."""
        key = self._require_key()
        result = await self.transport.request(
            self._path(path),
            method,
            encrypt_fields(body, key) if body is not None else None,
        )
        if result is None:
            return None
        # A write-only key cannot read responses back
        if isinstance(key, KeyPair) and key.is_write_only:
            return result
        return decrypt_fields(result, key)

    async def fetch_public_key(self) -> None:
        """Prime the session for writing with only the board's public key."""
        result = await self.transport.post(self._path("/public-key"))
        if not result:
            raise KeyMaterialError("Unable to fetch public key")
        self.board_key = KeyPair.from_public_key(result)

    async def fetch_project(self) -> dict[str, Any]:
        """Fetch the project, resolve its key from the membership and decrypt it."""
        result = await self.transport.get(self._path("/"))

        membership = result.get("membership") if result else None
        if not membership:
            raise KeyMaterialError("No membership for this board")

        self.board_key = resolve_board_key(membership, self.key_pair)
        return decrypt_fields(result, self.board_key)

    async def load(self) -> dict[str, Any]:
        """Fetch the project and apply any pending migrations."""
        project = await self.fetch_project()
        await self.run_migrations(project)
        return project

    async def run_migrations(self, project: dict[str, Any]) -> int:
        key = self._require_key()
        ctx = MigrationContext(
            decrypt=lambda ciphertext: symmetric.decrypt(ciphertext, key).decode("utf-8"),
            update_board=self.update_board,
            update_column=self.update_column,
        )
        return await self.runner.run(project, ctx)

    async def get(self, path: str) -> Any:
        return await self.encrypted_fetch(path, "GET")

    async def put(self, path: str, data: Any) -> Any:
        return await self.encrypted_fetch(path, "PUT", data)

    async def post(self, path: str, data: Any) -> Any:
        return await self.encrypted_fetch(path, "POST", data)

    async def delete(self, path: str) -> Any:
        return await self.encrypted_fetch(path, "DELETE")

    async def update_board(self, data: dict[str, Any]) -> Any:
        return await self.put("/board", data)

    async def update_column(self, column_id: str, data: dict[str, Any]) -> Any:
        return await self.put(f"/columns/{column_id}", data)

    async def make_public(self) -> Any:
        """Publish the exported resource key so anyone with the link can read and write."""
        key = self._require_key()
        if isinstance(key, SymmetricKey):
            private_key = base64.b64encode(symmetric.export_key(key)).decode("ascii")
        else:
            private_key = key.export()
        return await self.put("/make-public", {"privateKey": private_key})

    async def make_private(self) -> Any:
        return await self.get("/make-private")

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet, InvalidToken

from connector_sync.dtos.connection_dtos import UpdateTokensDTO
from connector_sync.integrations.core.exceptions import AuthError
from connector_sync.integrations.core.interfaces import IConnectorProvider
from connector_sync.integrations.core.types import AuthContext, TokenResponse
from connector_sync.models.connection import Connection
from connector_sync.repositories.connection_repository import ConnectionRepository

logger = logging.getLogger(__name__)


class TokenCipher:
    def __init__(self, encryption_key: str):
        self._fernet = Fernet(encryption_key.encode())

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, encrypted_value: str) -> str:
        try:
            return self._fernet.decrypt(encrypted_value.encode()).decode()
        except InvalidToken as e:
            raise AuthError("Stored credential could not be decrypted") from e


def compute_expires_at(expires_in: int | None) -> datetime | None:
    if not expires_in:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=expires_in)


class TokenLifecycleManager:
    def __init__(
        self,
        connection_repository: ConnectionRepository,
        cipher: TokenCipher,
        provider_resolver: Callable[[str], IConnectorProvider],
        refresh_buffer_seconds: int = 300,
    ):
        self._connection_repository = connection_repository
        self._cipher = cipher
        self._provider_resolver = provider_resolver
        self._refresh_buffer = timedelta(seconds=refresh_buffer_seconds)

    async def ensure_valid_token(self, connection: Connection) -> AuthContext:
        """Return usable credentials, refreshing them first if they expire soon.

        The passed connection is updated in place when a refresh happens.
        """
        if not connection.access_token_encrypted:
            raise AuthError(
                f"Connection {connection.id} has no access token. Please re-authenticate."
            )

        if not self._is_token_expiring(connection.token_expires_at):
            return AuthContext(
                access_token=self._cipher.decrypt(connection.access_token_encrypted),
                expires_at=connection.token_expires_at,
            )

        return await self.refresh(connection)

    async def refresh(self, connection: Connection) -> AuthContext:
        """Refresh unconditionally and persist the new credentials."""
        if not connection.refresh_token_encrypted:
            raise AuthError("No refresh token available. Please re-authenticate.")

        logger.info(f"Refreshing access token for connection {connection.id}")
        refresh_token = self._cipher.decrypt(connection.refresh_token_encrypted)
        provider = self._provider_resolver(connection.provider_slug)

        try:
            token_response = await provider.refresh_access_token(
                refresh_token, connection.workspace_id
            )
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"Token refresh failed for connection {connection.id}: {e}")
            raise AuthError(
                f"Token refresh failed for connection {connection.id}: {e}"
            ) from e

        await self._store_refreshed_tokens(connection, token_response)
        logger.info(f"Successfully refreshed token for connection {connection.id}")
        return AuthContext(
            access_token=token_response.access_token,
            token_type=token_response.token_type or "Bearer",
            expires_at=connection.token_expires_at,
        )

    async def _store_refreshed_tokens(
        self, connection: Connection, token_response: TokenResponse
    ) -> None:
        if token_response.refresh_token:
            refresh_encrypted = self._cipher.encrypt(token_response.refresh_token)
        else:
            refresh_encrypted = connection.refresh_token_encrypted

        dto = UpdateTokensDTO(
            access_token_encrypted=self._cipher.encrypt(token_response.access_token),
            refresh_token_encrypted=refresh_encrypted,
            token_expires_at=compute_expires_at(token_response.expires_in),
            scope=token_response.scope or connection.scope,
        )
        await self._connection_repository.update_tokens(connection.id, dto)

        connection.access_token_encrypted = dto.access_token_encrypted
        connection.refresh_token_encrypted = dto.refresh_token_encrypted
        connection.token_expires_at = dto.token_expires_at
        connection.scope = dto.scope

    def _is_token_expiring(self, expires_at: datetime | None) -> bool:
        if expires_at is None:
            return False
        return expires_at - datetime.now(timezone.utc) < self._refresh_buffer

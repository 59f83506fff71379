"""Identity service client (user directory)."""

from cinerec.clients.base import RestClient
from cinerec.clients.schemas import Envelope, User


class IdentityClient(RestClient):
    service_name = "auth"
    api_prefix = "/api/v1/auth"

    async def get_active_users(self) -> list[User]:
        envelope = await self.fetch("/users", Envelope[list[User]], params={"active": "true"})
        return envelope.data

    async def get_user(self, user_id: str) -> User:
        envelope = await self.fetch(f"/users/{user_id}", Envelope[User])
        return envelope.data

"""Purchase-history service client (reservations)."""

from cinerec.clients.base import RestClient
from cinerec.clients.schemas import Envelope, Reservation


class PurchaseClient(RestClient):
    service_name = "nakup"
    api_prefix = "/api/v1/nakup"

    async def get_user_reservations(self, user_id: str) -> list[Reservation]:
        """Return every reservation the user has made, in service order."""
        envelope = await self.fetch(
            "/reservations", Envelope[list[Reservation]], params={"user_id": user_id}
        )
        return envelope.data

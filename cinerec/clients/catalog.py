"""Programme catalog client (movies and scheduled timeslots)."""

from datetime import datetime

from cinerec.clients.base import RestClient
from cinerec.clients.schemas import Envelope, Movie, TimeSlot


class CatalogClient(RestClient):
    service_name = "spored"
    api_prefix = "/api/v1/spored"

    async def get_timeslot(self, timeslot_id: str) -> TimeSlot:
        # The single-timeslot endpoint returns the object without the data envelope.
        return await self.fetch(f"/timeslots/{timeslot_id}", TimeSlot)

    async def get_upcoming_timeslots(
        self,
        start: datetime,
        end: datetime,
    ) -> list[TimeSlot]:
        """Fetch showings starting between ``start`` and ``end``.

        Args:
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            Timeslots with their embedded movie, in service order
        """
        envelope = await self.fetch(
            "/timeslots",
            Envelope[list[TimeSlot]],
            params={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
        return envelope.data

    async def get_movie(self, movie_id: str) -> Movie:
        envelope = await self.fetch(f"/movies/{movie_id}", Envelope[Movie])
        return envelope.data

    async def get_active_movies(self) -> list[Movie]:
        envelope = await self.fetch("/movies", Envelope[list[Movie]], params={"active": "true"})
        return envelope.data

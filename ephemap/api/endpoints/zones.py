"""Read-only views of zones and actor vote tallies."""

from fastapi import APIRouter, Query

from ephemap.api.deps import Store
from ephemap.schemas.photo import ActorTallyResponse, ZoneSummary
from ephemap.services.zones import validate_coordinates, zone_of

router = APIRouter(tags=["Zones"])


@router.get("/zones/lookup", response_model=ZoneSummary)
async def lookup_zone(
    store: Store,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
) -> ZoneSummary:
    """Summary of the zone containing a coordinate."""
    validate_coordinates(latitude, longitude)
    return ZoneSummary(**await store.zone_summary(zone_of(latitude, longitude)))


@router.get("/zones/{zone_id}", response_model=ZoneSummary)
async def get_zone(zone_id: str, store: Store) -> ZoneSummary:
    """Live population of a zone and whether it is on a finite clock."""
    return ZoneSummary(**await store.zone_summary(zone_id))


@router.get("/actors/{actor_id}", response_model=ActorTallyResponse)
async def get_actor_tally(actor_id: str, store: Store) -> ActorTallyResponse:
    """Likes and dislikes an actor has cast, and whether they may dislike."""
    tally = await store.get_tally(actor_id)
    return ActorTallyResponse.model_validate(tally)

"""Manual trigger for the expired-photo sweep."""

from typing import Annotated, Dict

from fastapi import APIRouter, Depends

from ephemap.api.deps import get_reaper
from ephemap.services.reaper import Reaper

router = APIRouter(prefix="/reaper", tags=["Reaper"])


@router.post("/sweep", response_model=Dict[str, int])
async def sweep(reaper: Annotated[Reaper, Depends(get_reaper)]) -> Dict[str, int]:
    """Run one sweep now.

    Returns ``{"deleted": n}``. A store failure surfaces as a 500 with
    the ``ReaperError`` message.
    """
    result = await reaper.sweep()
    return result.to_dict()

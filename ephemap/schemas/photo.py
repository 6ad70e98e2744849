"""Request and response schemas for photo markers."""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Tuple

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, computed_field

from ephemap.models import Photo

if TYPE_CHECKING:
    from ephemap.services.storage_manager import StorageManager


class PhotoCreate(BaseModel):
    """Body of ``POST /photos`` when the assets are already stored."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    created_by: str = Field("Anonymous", min_length=1, max_length=64)
    photo_key: Optional[str] = Field(None, max_length=512)
    thumbnail_key: Optional[str] = Field(None, max_length=512)


class PhotoUpdate(BaseModel):
    """Partial update of a photo; ``version`` enables compare-and-set."""

    model_config = ConfigDict(extra="forbid")

    likes: Optional[int] = Field(None, ge=0)
    dislikes: Optional[int] = Field(None, ge=0)
    expires_at: Optional[AwareDatetime] = None
    created_by: Optional[str] = Field(None, min_length=1, max_length=64)
    photo_key: Optional[str] = Field(None, max_length=512)
    thumbnail_key: Optional[str] = Field(None, max_length=512)
    version: Optional[int] = Field(None, ge=1)


class PhotoDeleteRequest(BaseModel):
    ids: List[str] = Field(..., max_length=500)


class PhotoResponse(BaseModel):
    """Photo as returned to the map and pushed on the change feed."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    latitude: float
    longitude: float
    zone_id: str
    created_at: datetime
    expires_at: Optional[datetime]
    likes: int
    dislikes: int
    views: int
    created_by: str
    last_interaction: datetime
    photo_key: Optional[str] = None
    thumbnail_key: Optional[str] = None
    photo_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    version: int

    @computed_field  # type: ignore[misc]
    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @computed_field  # type: ignore[misc]
    @property
    def infinite(self) -> bool:
        return self.expires_at is None

    @classmethod
    def from_photo(
        cls, photo: Photo, storage: Optional["StorageManager"] = None
    ) -> "PhotoResponse":
        response = cls.model_validate(photo)
        if storage is not None:
            response.photo_url = storage.public_url(photo.photo_key)
            response.thumbnail_url = storage.public_url(photo.thumbnail_key)
        return response


class ViewsResponse(BaseModel):
    id: str
    views: int


class DeleteResponse(BaseModel):
    deleted: int


class ZoneSummary(BaseModel):
    """Population and life mode of a zone."""

    zone_id: str
    population: int
    threshold: int
    finite: bool


class ActorTallyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    actor_id: str
    likes: int
    dislikes: int
    can_dislike: bool

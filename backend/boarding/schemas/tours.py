from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from boarding.models.enums import ProgressPosition, PropagationMethod


class TourSave(BaseModel):
    # id of an existing tour; omitted when creating.
    id: Optional[int] = None
    tour_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = ""
    enabled: bool = True
    translatable: bool = False
    propagation_method: Optional[PropagationMethod] = None
    progress_position: ProgressPosition = ProgressPosition.BOTTOM
    autoplay: bool = False
    # Steps may carry a per-site ``translations`` map from the editor.
    steps: list[dict[str, Any]] = Field(default_factory=list)
    # Left loose: the group normalizer accepts any nesting of ids.
    user_group_ids: Optional[Any] = None
    # {site_id: enabled} for per-site enablement posted from the editor.
    site_enabled: Optional[dict[str, Any]] = None


class TourEnabledUpdate(BaseModel):
    enabled: bool
    site_id: Optional[int] = None


class CompletionRead(BaseModel):
    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    completed_at: Optional[datetime] = None


class TourRead(BaseModel):
    id: int
    tour_id: str
    site_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    enabled: bool
    translatable: bool = False
    propagation_method: str
    progress_position: Optional[str] = None
    autoplay: Optional[bool] = None
    steps: list[dict[str, Any]] = Field(default_factory=list)
    user_groups: list[int] = Field(default_factory=list)
    completed_by: list[CompletionRead] = Field(default_factory=list)
    translations: Optional[dict[int, dict[str, Any]]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserTourRead(BaseModel):
    id: int
    tour_id: str
    name: str
    description: Optional[str] = None
    progress_position: Optional[str] = None
    autoplay: Optional[bool] = None
    steps: list[dict[str, Any]] = Field(default_factory=list)
    current_step: int = 0
    completed: bool = False
    completion_count: int = 0


class TourSaveResponse(BaseModel):
    success: bool = True
    id: int


class ImportResult(BaseModel):
    success: bool = True
    imported: int
    updated: int
    skipped: int
    errors: list[str] = Field(default_factory=list)
    message: str


class EditionRead(BaseModel):
    edition: str
    is_pro: bool
    tour_limit: Optional[int] = None
    has_limits: bool
    capabilities: list[str] = Field(default_factory=list)

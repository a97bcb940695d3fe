from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

class ViewRecordResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    views: int
    is_new: bool = Field(alias="isNew")

class ViewCountResult(BaseModel):
    views: int

class ViewStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_views: int = Field(0, alias="totalViews")
    unique_users: int = Field(0, alias="uniqueUsers")
    unique_addresses: int = Field(0, alias="uniqueAddresses")
    last_viewed_at: Optional[datetime] = Field(None, alias="lastViewedAt")

class ViewRecordResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: ViewRecordResult

class ViewCountResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: ViewCountResult

class ViewStatsResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: ViewStats

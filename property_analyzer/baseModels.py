from typing import List, Optional, Union

from pydantic import BaseModel, Field, NonNegativeFloat, NonNegativeInt, StrictFloat, StrictInt


class RoomRecord(BaseModel):
    name: str
    dimensions: str
    area: float = Field(ge=0)
    features: List[str] = []


class FloorPlanResult(BaseModel):
    """
    Shape the floor plan prompt asks the analyser for. Well-formed replies are passed through as-is,
    so this mainly documents the response and builds the placeholder result.
    """
    rooms: List[RoomRecord] = []
    totalArea: Union[NonNegativeInt, NonNegativeFloat] = 0
    notes: Optional[str] = None
    error: Optional[str] = None


class ChattelItem(BaseModel):
    name: str
    replacementCost: Union[StrictInt, StrictFloat]  # GBP
    confidence: Union[StrictInt, StrictFloat]  # 0-1, not clamped


class ChattelResult(BaseModel):
    items: List[ChattelItem] = []
    notes: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    rawResponsePreview: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    analyser_configured: bool

"""
Pydantic schemas for the arrivals and batch endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from transit_eta.core.models import Alert, Arrival


class ArrivalOut(BaseModel):
    """One upcoming departure from the rider's origin."""

    model_config = ConfigDict(populate_by_name=True)

    route_id: str = Field(..., alias="routeId")
    time: int = Field(..., description="Unix seconds")
    minutes_until: int = Field(..., ge=0, alias="minutesUntil")
    status: str = Field(..., description="Live or Scheduled")
    source_trip_id: str = Field(..., alias="sourceTripId")
    destination: Optional[str] = None
    destination_arrival_time: Optional[int] = Field(default=None, alias="destinationArrivalTime")
    track: Optional[str] = None

    @classmethod
    def from_arrival(cls, arrival: Arrival) -> "ArrivalOut":
        return cls(
            route_id=arrival.route_id,
            time=arrival.time,
            minutes_until=arrival.minutes_until,
            status=arrival.status.value,
            source_trip_id=arrival.source_trip_id,
            destination=arrival.destination,
            destination_arrival_time=arrival.destination_arrival_time,
            track=arrival.track,
        )


class AlertOut(BaseModel):
    header: str
    description: str = ""

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertOut":
        return cls(header=alert.header, description=alert.description)


class ArrivalsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    arrivals: List[ArrivalOut] = Field(default_factory=list)
    alerts: List[AlertOut] = Field(default_factory=list)
    debug_info: Dict[str, Any] = Field(default_factory=dict, alias="debugInfo")


class BatchRequestItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    mode: str
    route_id: str = Field(default="", alias="routeId")
    stop_id: str = Field(..., min_length=1, alias="stopId")
    direction: Optional[str] = None
    destination: Optional[str] = None


class BatchRequest(BaseModel):
    requests: List[BatchRequestItem] = Field(default_factory=list, max_length=50)


class BatchItemOut(BaseModel):
    etas: List[str] = Field(default_factory=list)
    arrivals: List[int] = Field(default_factory=list)
    error: Optional[str] = None


class BatchResponse(BaseModel):
    results: Dict[str, BatchItemOut] = Field(default_factory=dict)

"""
Arrival lookup endpoints used by the commute cards.
"""

from typing import Dict, List, Optional, Tuple

import structlog
from fastapi import APIRouter, Depends, Query as QueryParam, Request

from transit_eta.core.exceptions import TransitEtaException
from transit_eta.core.models import AgencyMode, Query
from transit_eta.schemas.arrivals import (
    AlertOut,
    ArrivalOut,
    ArrivalsResponse,
    BatchItemOut,
    BatchRequest,
    BatchResponse,
)
from transit_eta.services.arrivals import ArrivalService

logger = structlog.get_logger()
router = APIRouter()


def get_arrival_service(request: Request) -> ArrivalService:
    return request.app.state.arrival_service


@router.get("/arrivals", response_model=ArrivalsResponse)
async def get_arrivals(
    mode: str = QueryParam(..., description="Agency mode, e.g. subway, lirr, nyc-ferry"),
    route_id: str = QueryParam("", alias="routeId"),
    stop_id: str = QueryParam(..., min_length=1, alias="stopId"),
    direction: Optional[str] = QueryParam(None),
    destination_stop_id: Optional[str] = QueryParam(None, alias="destinationStopId"),
    service: ArrivalService = Depends(get_arrival_service),
):
    """
    Next arrivals for one saved trip.

    Upstream failures do not produce an HTTP error: the response carries
    an empty `arrivals` list and the reason in `debugInfo.error`.
    """
    query = Query(
        mode=AgencyMode.parse(mode),
        route_id=route_id,
        stop_id=stop_id,
        direction=direction or None,
        destination_stop_id=destination_stop_id or None,
    )

    try:
        result = await service.resolve(query)
    except TransitEtaException as e:
        logger.warning("Arrival lookup failed", mode=mode, route=route_id, stop=stop_id, error=e.detail)
        return ArrivalsResponse(
            debug_info={"mode": query.mode.value, "error": e.detail, "errorCode": e.error_code},
        )

    return ArrivalsResponse(
        arrivals=[ArrivalOut.from_arrival(a) for a in result.arrivals],
        alerts=[AlertOut.from_alert(a) for a in result.alerts],
        debug_info=result.debug,
    )


@router.post("/batch", response_model=BatchResponse, response_model_exclude_none=True)
async def batch_arrivals(
    body: BatchRequest,
    service: ArrivalService = Depends(get_arrival_service),
):
    """Resolve many saved trips at once; each item succeeds or fails on its own."""
    results: Dict[str, BatchItemOut] = {}
    queries: List[Tuple[str, Query]] = []

    for item in body.requests:
        try:
            mode = AgencyMode.parse(item.mode)
        except TransitEtaException as e:
            results[item.id] = BatchItemOut(error=e.detail)
            continue
        queries.append(
            (
                item.id,
                Query(
                    mode=mode,
                    route_id=item.route_id,
                    stop_id=item.stop_id,
                    direction=item.direction or None,
                    destination_stop_id=item.destination or None,
                ),
            )
        )

    resolved = await service.resolve_batch(queries)
    for item_id, outcome in resolved.items():
        results[item_id] = BatchItemOut(etas=outcome.etas, arrivals=outcome.arrivals, error=outcome.error)

    logger.info(
        "Resolved batch",
        items=len(body.requests),
        failed=sum(1 for r in results.values() if r.error),
    )
    return BatchResponse(results=results)

"""
DCA Executor API Endpoints

HTTP trigger for the keeper: discover due orders, execute a bounded batch,
or execute one order by id.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..context import ExecutorContext
from ..core.dca import DiscoveryOptions, EligibleOrder, ExecutorService, OrderNotEligibleError
from ..core.recovery.errors import BatchTimeoutError, ConfigurationError, KeeperError

router = APIRouter(tags=["Executor"])
_slog = structlog.stdlib.get_logger("api.executor")


# =============================================================================
# Request/Response Models
# =============================================================================


class ExecuteRequest(BaseModel):
    """Optional body for a batch run."""
    limit: Optional[int] = Field(None, ge=1, le=100, description="Max orders to take on")
    owner: Optional[str] = Field(None, description="Only orders owned by this address")
    timeout_ms: Optional[int] = Field(
        None, alias="timeoutMs", ge=6000, description="Platform time limit for this run"
    )

    class Config:
        populate_by_name = True


class OrderSummary(BaseModel):
    """Due order as listed by discovery."""
    id: str
    owner: str
    input_type: str = Field(..., alias="inputType")
    output_type: str = Field(..., alias="outputType")
    remaining_orders: int = Field(..., alias="remainingOrders")
    split_allocation: str = Field(..., alias="splitAllocation")
    ms_until_eligible: str = Field(..., alias="msUntilEligible")

    class Config:
        populate_by_name = True

    @classmethod
    def from_order(cls, order: EligibleOrder) -> "OrderSummary":
        return cls(
            id=order.id,
            owner=order.owner,
            inputType=order.input_type,
            outputType=order.output_type,
            remainingOrders=order.remaining_orders,
            splitAllocation=str(order.split_allocation),
            msUntilEligible=str(order.ms_until_eligible),
        )


# =============================================================================
# Dependencies
# =============================================================================


def get_context(request: Request) -> ExecutorContext:
    """Context built at startup; overridden in tests."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Executor is not initialized")
    return context


def verify_api_key(
    context: ExecutorContext = Depends(get_context),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_key: Optional[str] = Query(None),
) -> bool:
    """Enforced only when API_KEY is configured."""
    expected = context.settings.api_key
    if expected and (x_api_key or api_key) != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


def get_service(context: ExecutorContext = Depends(get_context)) -> ExecutorService:
    return ExecutorService(context)


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/healthz")
async def health_check(context: ExecutorContext = Depends(get_context)) -> Dict[str, Any]:
    """Liveness plus ledger and aggregator status."""
    providers = {
        "ledger": await context.ledger.health_check(),
        "aggregator": await context.aggregator.health_check(),
    }
    healthy = all(p["status"] in ("healthy", "configured") for p in providers.values())

    # Gas for the next batch is paid from this balance.
    balance: Optional[str] = None
    if context.executor_address:
        try:
            balance = str(await context.ledger.get_balance(context.executor_address))
        except Exception as e:
            _slog.warning("executor_balance_unavailable", error=str(e))

    return {
        "status": "healthy" if healthy else "degraded",
        "network": context.settings.sui_network,
        "dryRun": context.settings.dry_run,
        "executor": context.executor_address,
        "executorBalance": balance,
        "providers": providers,
    }


@router.get("/discover")
async def discover(
    limit: int = Query(50, ge=1, le=1000),
    cursor: Optional[str] = Query(None),
    owner: Optional[str] = Query(None),
    input_type: Optional[str] = Query(None, alias="inputType"),
    output_type: Optional[str] = Query(None, alias="outputType"),
    _: bool = Depends(verify_api_key),
    service: ExecutorService = Depends(get_service),
) -> Dict[str, Any]:
    """Read-only listing of due orders, most overdue first."""
    options = DiscoveryOptions(
        limit=limit,
        cursor=cursor or None,
        owner=owner or None,
        input_type=input_type or None,
        output_type=output_type or None,
    )
    try:
        result = await service.discover(options)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeeperError as e:
        _slog.error("discover_failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    dcas: List[Dict[str, Any]] = [
        OrderSummary.from_order(o).model_dump(by_alias=True) for o in result.orders
    ]
    return {
        "success": True,
        "data": {
            "dcas": dcas,
            "hasMore": result.has_more,
            "nextCursor": result.next_cursor,
            "totalDiscovered": result.total_discovered,
            "totalEligible": result.total_eligible,
        },
    }


@router.post("/execute")
async def execute(
    request: Optional[ExecuteRequest] = Body(None),
    _: bool = Depends(verify_api_key),
    service: ExecutorService = Depends(get_service),
) -> Dict[str, Any]:
    """Discover and execute one batch sized to the platform time limit."""
    request = request or ExecuteRequest()
    try:
        batch = await service.execute(limit=request.limit, owner=request.owner, timeout_ms=request.timeout_ms)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except BatchTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except KeeperError as e:
        _slog.error("execute_failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))

    response: Dict[str, Any] = {"success": True, "data": batch.to_dict()}
    if batch.total == 0:
        response["message"] = "No eligible DCAs found"
    return response


@router.post("/execute/{order_id}")
async def execute_order(
    order_id: str,
    _: bool = Depends(verify_api_key),
    service: ExecutorService = Depends(get_service),
) -> Dict[str, Any]:
    """Execute a single order if it is due."""
    try:
        result = await service.execute_order(order_id)
    except OrderNotEligibleError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except KeeperError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"success": result.success, "data": result.to_dict()}

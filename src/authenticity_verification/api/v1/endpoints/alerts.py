"""
Supply-chain alert endpoint.
"""

from fastapi import APIRouter, Depends

from ....agents.supply_chain_monitor import SupplyChainMonitorAgent, aggregate_alerts
from ....services.auth import VerifierContext
from ....utils.time_utils import utc_now
from ...deps import get_monitor_agent, require_admin
from ..schemas.alerts import SupplyChainMonitorResponse

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/supply-chain", response_model=SupplyChainMonitorResponse)
async def monitor_supply_chain(
    admin: VerifierContext = Depends(require_admin),
    monitor: SupplyChainMonitorAgent = Depends(get_monitor_agent)
) -> SupplyChainMonitorResponse:
    """Run the supplier checks over stored verifications and return the raised alerts."""
    now = utc_now()
    alerts = await monitor.monitor_stored_suppliers(now)
    return SupplyChainMonitorResponse(alerts=alerts, summary=aggregate_alerts(alerts), timestamp=now)

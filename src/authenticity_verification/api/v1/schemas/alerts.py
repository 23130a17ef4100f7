"""
Schemas for the supply-chain alert endpoint.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from ....agents.supply_chain_monitor import AlertSummary, SupplyChainAlert


class SupplyChainMonitorResponse(BaseModel):
    alerts: List[SupplyChainAlert] = Field(default_factory=list)
    summary: AlertSummary
    timestamp: datetime

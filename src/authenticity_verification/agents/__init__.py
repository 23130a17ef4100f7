"""
Event-driven agents consuming verification outcomes.
"""

from .base import AgentCapability, AgentResponse, AgentStatus, BaseAgent
from .enforcement_agent import EnforcementAction, EnforcementAgent, RiskAssessment, evaluate_action
from .supply_chain_monitor import (
    AlertSummary,
    SupplierSnapshot,
    SupplyChainAlert,
    SupplyChainMonitorAgent,
    aggregate_alerts,
    monitor_supplier,
)

__all__ = [
    "AgentCapability",
    "AgentResponse",
    "AgentStatus",
    "AlertSummary",
    "BaseAgent",
    "EnforcementAction",
    "EnforcementAgent",
    "RiskAssessment",
    "SupplierSnapshot",
    "SupplyChainAlert",
    "SupplyChainMonitorAgent",
    "aggregate_alerts",
    "evaluate_action",
    "monitor_supplier",
]

"""
Supply chain monitoring agent.

Evaluates supplier-level verification statistics on a slow cadence and
watches the stream of completed verifications for products that keep
producing high-risk scans.
"""

import uuid
from collections import Counter, OrderedDict, deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..db.repositories.base import SupplierScanStats, SupplierStatsStore
from ..models.enums import AlertType, RiskLevel
from ..models.messages import SUPPLY_CHAIN_ALERT, VERIFICATION_COMPLETED, AgentMessage
from ..models.schemas import FraudRiskFeatures
from ..services.event_bus import EventBus
from ..services.scoring.fraud_risk import calculate_fraud_risk
from ..utils.time_utils import ensure_utc, utc_now
from .base import AgentCapability, AgentResponse, BaseAgent

FRAUD_ALERT_THRESHOLD = 70.0
INACTIVITY_DAYS = 90
BULK_PRODUCT_COUNT = 100
BULK_VERIFICATION_FLOOR = 5
DEFAULT_AVERAGE_RISK_SCORE = 50.0


class SupplierSnapshot(BaseModel):
    """Accumulated verification statistics for one supplier."""
    supplier_id: str
    org_id: str
    product_count: int = Field(0, ge=0)
    fraud_count: int = Field(0, ge=0)
    recent_verifications: int = Field(0, ge=0)
    verification_failure_rate: float = Field(0.0, ge=0.0, le=1.0)
    suspicious_product_rate: float = Field(0.0, ge=0.0, le=1.0)
    average_risk_score: float = Field(0.0, ge=0.0, le=100.0)
    last_activity_at: datetime

    @field_validator("last_activity_at")
    @classmethod
    def normalise_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_stats(cls, stats: SupplierScanStats, now: datetime) -> "SupplierSnapshot":
        """Build a snapshot from stored verification aggregates."""
        average = stats.average_ai_score
        return cls(
            supplier_id=stats.supplier_id,
            org_id=stats.org_id,
            product_count=stats.product_count,
            fraud_count=stats.fraud_count,
            recent_verifications=stats.recent_verifications,
            verification_failure_rate=stats.failure_rate,
            suspicious_product_rate=stats.suspicious_rate,
            average_risk_score=(
                DEFAULT_AVERAGE_RISK_SCORE if average is None else min(100.0, max(0.0, average))
            ),
            last_activity_at=stats.last_activity_at or now,
        )


class SupplyChainAlert(BaseModel):
    """Alert raised by the monitor."""
    alert_id: str
    type: AlertType
    severity: RiskLevel
    supplier_id: Optional[str] = None
    product_id: Optional[str] = None
    batch_id: Optional[str] = None
    description: str
    risk_score: float = Field(ge=0.0, le=100.0)
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AlertSummary(BaseModel):
    """Alert totals for dashboards."""
    total_alerts: int = 0
    critical_alerts: int = 0
    high_alerts: int = 0
    medium_alerts: int = 0
    low_alerts: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_supplier: Dict[str, int] = Field(default_factory=dict)


def _alert_id() -> str:
    return f"alert_{uuid.uuid4().hex}"


def monitor_supplier(snapshot: SupplierSnapshot, now: Optional[datetime] = None) -> List[SupplyChainAlert]:
    """
    Flag anomalies in one supplier's statistics.

    Args:
        snapshot: Supplier statistics
        now: Evaluation time

    Returns:
        Alerts raised for the supplier, possibly empty
    """
    now = now or utc_now()
    alerts: List[SupplyChainAlert] = []
    days_inactive = (now - snapshot.last_activity_at).total_seconds() / 86400

    reputation = 100.0 if snapshot.fraud_count == 0 else max(0.0, 100.0 - snapshot.fraud_count * 10)
    risk = calculate_fraud_risk(FraudRiskFeatures(
        supplier_reputation=reputation,
        supplier_fraud_history=snapshot.fraud_count,
        suspicious_verification_rate=snapshot.suspicious_product_rate,
        verification_count=snapshot.recent_verifications,
    ))

    if risk.risk_score > FRAUD_ALERT_THRESHOLD:
        alerts.append(SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.FRAUD_DETECTED,
            severity=RiskLevel.CRITICAL,
            supplier_id=snapshot.supplier_id,
            description=(
                f"Supplier has critical fraud risk score of {risk.risk_score:.0f}/100. "
                "Multiple fraud indicators detected."
            ),
            risk_score=risk.risk_score,
            timestamp=now,
            metadata={
                "fraud_count": snapshot.fraud_count,
                "verification_failure_rate": snapshot.verification_failure_rate,
                "suspicious_product_rate": snapshot.suspicious_product_rate,
                "factors": risk.factors,
            },
        ))

    if snapshot.verification_failure_rate > 0.3 and snapshot.recent_verifications > 10:
        alerts.append(SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.PRODUCT_FLOW_ANOMALY,
            severity=RiskLevel.HIGH,
            supplier_id=snapshot.supplier_id,
            description=(
                f"High verification failure rate: {snapshot.verification_failure_rate * 100:.0f}% "
                "of products failing verification."
            ),
            risk_score=snapshot.verification_failure_rate * 100,
            timestamp=now,
            metadata={
                "verification_failure_rate": snapshot.verification_failure_rate,
                "recent_verifications": snapshot.recent_verifications,
            },
        ))

    if snapshot.suspicious_product_rate > 0.2 and snapshot.recent_verifications > 5:
        alerts.append(SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.PRODUCT_FLOW_ANOMALY,
            severity=RiskLevel.MEDIUM,
            supplier_id=snapshot.supplier_id,
            description=(
                f"High suspicious product rate: {snapshot.suspicious_product_rate * 100:.0f}% "
                "of products flagged as suspicious."
            ),
            risk_score=snapshot.suspicious_product_rate * 100,
            timestamp=now,
            metadata={"suspicious_product_rate": snapshot.suspicious_product_rate},
        ))

    if days_inactive > INACTIVITY_DAYS and snapshot.product_count == 0:
        alerts.append(SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.SUPPLIER_ANOMALY,
            severity=RiskLevel.LOW,
            supplier_id=snapshot.supplier_id,
            description=(
                f"Supplier has been inactive for {int(days_inactive)} days with no products registered."
            ),
            risk_score=10.0,
            timestamp=now,
            metadata={"days_since_last_activity": int(days_inactive)},
        ))

    if snapshot.product_count > BULK_PRODUCT_COUNT and snapshot.recent_verifications < BULK_VERIFICATION_FLOOR:
        alerts.append(SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.PRODUCT_FLOW_ANOMALY,
            severity=RiskLevel.MEDIUM,
            supplier_id=snapshot.supplier_id,
            description=(
                f"Supplier has registered {snapshot.product_count} products but few verifications. "
                "Possible bulk counterfeit registration."
            ),
            risk_score=40.0,
            timestamp=now,
            metadata={
                "product_count": snapshot.product_count,
                "recent_verifications": snapshot.recent_verifications,
            },
        ))

    return alerts


def aggregate_alerts(alerts: List[SupplyChainAlert]) -> AlertSummary:
    """Count alerts by severity, type and supplier."""
    severities = Counter(alert.severity for alert in alerts)
    by_type = Counter(alert.type.value for alert in alerts)
    by_supplier = Counter(alert.supplier_id for alert in alerts if alert.supplier_id)

    return AlertSummary(
        total_alerts=len(alerts),
        critical_alerts=severities[RiskLevel.CRITICAL],
        high_alerts=severities[RiskLevel.HIGH],
        medium_alerts=severities[RiskLevel.MEDIUM],
        low_alerts=severities[RiskLevel.LOW],
        by_type=dict(by_type),
        by_supplier=dict(by_supplier),
    )


class SupplyChainMonitorAgent(BaseAgent):
    """Raises supply-chain alerts from supplier statistics and the verification stream."""

    subscribed_channels = (VERIFICATION_COMPLETED,)

    def __init__(
        self,
        agent_id: str = "supply_chain_monitor",
        event_bus: Optional[EventBus] = None,
        supplier_stats: Optional[SupplierStatsStore] = None,
        high_risk_threshold: int = 3,
        window_size: int = 10,
        activity_window_days: int = 30,
        history_limit: int = 1000,
        max_tracked_products: int = 10000
    ):
        capabilities = [
            AgentCapability(
                name="supplier_monitoring",
                description="Flag anomalies in stored supplier verification statistics",
                input_types=["monitor_suppliers"],
                output_types=["supply_chain_alerts"]
            ),
            AgentCapability(
                name="high_risk_tracking",
                description="Alert on products that repeatedly verify as high risk",
                input_types=[VERIFICATION_COMPLETED],
                output_types=[SUPPLY_CHAIN_ALERT]
            ),
        ]
        super().__init__(
            agent_id=agent_id,
            agent_type="supply_chain_monitor",
            capabilities=capabilities,
            event_bus=event_bus
        )
        self.supplier_stats = supplier_stats
        self.high_risk_threshold = high_risk_threshold
        self.window_size = window_size
        self.activity_window = timedelta(days=activity_window_days)
        self.max_tracked_products = max_tracked_products
        # Least recently scanned products are evicted first.
        self._recent_risk: "OrderedDict[str, Deque[RiskLevel]]" = OrderedDict()
        self.raised_alerts: Deque[SupplyChainAlert] = deque(maxlen=history_limit)

    async def process_message(self, message: AgentMessage) -> AgentResponse:
        """Dispatch on message type."""
        if message.message_type == VERIFICATION_COMPLETED:
            alert = await self.track_verification(message.payload)
            return AgentResponse(
                success=True,
                result={"alert": alert.model_dump(mode="json") if alert else None}
            )

        elif message.message_type == "monitor_suppliers":
            alerts = await self.monitor_stored_suppliers()
            return AgentResponse(
                success=True,
                result={
                    "alerts": [alert.model_dump(mode="json") for alert in alerts],
                    "summary": aggregate_alerts(alerts).model_dump()
                }
            )

        else:
            return AgentResponse(
                success=False,
                error=f"Unknown message type: {message.message_type}"
            )

    async def monitor_stored_suppliers(self, now: Optional[datetime] = None) -> List[SupplyChainAlert]:
        """
        Run the supplier checks over statistics aggregated from stored verifications.

        Raises:
            RuntimeError: If no supplier statistics store is configured
        """
        if self.supplier_stats is None:
            raise RuntimeError("Supplier statistics store is not configured")

        now = now or utc_now()
        stats = await self.supplier_stats.get_supplier_stats(now, self.activity_window)
        snapshots = [SupplierSnapshot.from_stats(item, now) for item in stats]
        return await self.monitor_suppliers(snapshots, now)

    async def monitor_suppliers(
        self,
        snapshots: List[SupplierSnapshot],
        now: Optional[datetime] = None
    ) -> List[SupplyChainAlert]:
        """Run the supplier checks over many suppliers and publish every alert."""
        now = now or utc_now()
        alerts: List[SupplyChainAlert] = []
        for snapshot in snapshots:
            alerts.extend(monitor_supplier(snapshot, now))

        for alert in alerts:
            await self._raise(alert)

        self.logger.info("Supplier monitoring completed", suppliers=len(snapshots), alerts=len(alerts))
        return alerts

    async def track_verification(self, event: Dict[str, Any]) -> Optional[SupplyChainAlert]:
        """
        Track a completed verification.

        Raises a ``risk_threshold_exceeded`` alert once a product has
        accumulated enough high or critical risk scans in its window, then
        starts the product's window afresh.
        """
        product_id = event.get("productId")
        if not product_id or product_id == "unknown":
            return None

        window = self._risk_window(product_id)
        window.append(RiskLevel(event.get("riskLevel", RiskLevel.LOW.value)))

        high_risk = [level for level in window if level.rank >= RiskLevel.HIGH.rank]
        if len(high_risk) < self.high_risk_threshold:
            return None

        critical = sum(1 for level in high_risk if level == RiskLevel.CRITICAL)
        now = utc_now()
        alert = SupplyChainAlert(
            alert_id=_alert_id(),
            type=AlertType.RISK_THRESHOLD_EXCEEDED,
            severity=RiskLevel.CRITICAL if critical >= self.high_risk_threshold else RiskLevel.HIGH,
            supplier_id=event.get("manufacturerId"),
            product_id=product_id,
            description=(
                f"Product had {len(high_risk)} high-risk verifications "
                f"in its last {len(window)} scans."
            ),
            risk_score=100.0 * len(high_risk) / len(window),
            timestamp=now,
            metadata={
                "high_risk_verifications": len(high_risk),
                "critical_verifications": critical,
                "window": len(window),
                "last_scan_id": event.get("scanId"),
            },
        )
        window.clear()
        await self._raise(alert)
        return alert

    def _risk_window(self, product_id: str) -> Deque[RiskLevel]:
        window = self._recent_risk.get(product_id)
        if window is None:
            window = deque(maxlen=self.window_size)
            self._recent_risk[product_id] = window
            while len(self._recent_risk) > self.max_tracked_products:
                self._recent_risk.popitem(last=False)
        else:
            self._recent_risk.move_to_end(product_id)
        return window

    async def _raise(self, alert: SupplyChainAlert) -> None:
        self.raised_alerts.append(alert)
        self.logger.warning(
            "Supply chain alert raised",
            alert_id=alert.alert_id,
            alert_type=alert.type.value,
            severity=alert.severity.value,
            supplier_id=alert.supplier_id,
            product_id=alert.product_id
        )
        await self.publish(SUPPLY_CHAIN_ALERT, alert.model_dump(mode="json"))

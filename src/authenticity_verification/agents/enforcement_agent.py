"""
Enforcement agent.

Turns high and critical risk assessments into enforcement actions. Actions
execute immediately only when automatic enforcement is enabled; otherwise they
wait in the review queue.
"""

import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..db.repositories.base import ProductStatusStore
from ..models.enums import EnforcementActionType, EnforcementTarget, ProductStatus, RiskLevel
from ..models.messages import SUPPLY_CHAIN_ALERT, AgentMessage
from ..services.event_bus import EventBus
from ..utils.time_utils import utc_now
from .base import AgentCapability, AgentResponse, BaseAgent

ENFORCEMENT_EXECUTED = "enforcement.executed"

REVOKE_FRAUD_COUNT = 5
BATCH_FAILURE_RATE = 0.5


class RiskAssessment(BaseModel):
    """Risk data an enforcement decision is based on."""
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_level: RiskLevel
    fraud_count: Optional[int] = None
    verification_failure_rate: Optional[float] = None
    suspicious_rate: Optional[float] = None
    factors: List[str] = Field(default_factory=list)


class EnforcementAction(BaseModel):
    """An enforcement decision against one target."""
    action_id: str
    type: EnforcementActionType
    target_type: EnforcementTarget
    target_id: str
    reason: str
    risk_score: float
    confidence: float
    timestamp: datetime
    executed: bool = False
    executed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _decide(
    target_type: EnforcementTarget,
    risk: RiskAssessment
) -> Optional[Tuple[EnforcementActionType, str]]:
    critical = risk.risk_level == RiskLevel.CRITICAL
    score = f"{risk.risk_score:.0f}/100"

    if target_type == EnforcementTarget.PRODUCT:
        # High-risk products are left for review
        if critical:
            factors = ", ".join(risk.factors) or "Multiple risk factors detected"
            return (
                EnforcementActionType.BLOCK_PRODUCT,
                f"Product blocked due to critical fraud risk (score: {score}). {factors}"
            )
        return None

    if target_type == EnforcementTarget.SUPPLIER:
        fraud_count = risk.fraud_count or 0
        if critical and fraud_count > REVOKE_FRAUD_COUNT:
            return (
                EnforcementActionType.REVOKE_REGISTRATION,
                f"Supplier registration revoked due to critical fraud history "
                f"({fraud_count} incidents, risk score: {score})"
            )
        if risk.risk_level == RiskLevel.HIGH:
            return (
                EnforcementActionType.FLAG_SUPPLIER,
                f"Supplier flagged for review due to high fraud risk (score: {score})"
            )
        return None

    if target_type == EnforcementTarget.BATCH:
        failure_rate = risk.verification_failure_rate or 0.0
        if critical and failure_rate > BATCH_FAILURE_RATE:
            return (
                EnforcementActionType.BLOCK_PRODUCT,
                f"Batch products blocked due to critical failure rate ({failure_rate * 100:.0f}% failures)"
            )
        return None

    if critical:
        return (
            EnforcementActionType.SUSPEND_ACCOUNT,
            f"Account suspended due to critical fraud risk (score: {score})"
        )
    return None


def evaluate_action(
    target_type: EnforcementTarget,
    target_id: str,
    risk: RiskAssessment,
    now: Optional[datetime] = None
) -> Optional[EnforcementAction]:
    """
    Decide on an enforcement action.

    Args:
        target_type: Kind of entity assessed
        target_id: Entity id
        risk: Risk assessment for the entity
        now: Decision time

    Returns:
        EnforcementAction, or None when no action is warranted
    """
    if risk.risk_level not in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        return None

    decision = _decide(target_type, risk)
    if decision is None:
        return None

    action_type, reason = decision
    now = now or utc_now()
    return EnforcementAction(
        action_id=f"action_{uuid.uuid4().hex}",
        type=action_type,
        target_type=target_type,
        target_id=target_id,
        reason=reason,
        risk_score=risk.risk_score,
        confidence=90.0 if risk.risk_level == RiskLevel.CRITICAL else 70.0,
        timestamp=now,
        metadata={"risk_level": risk.risk_level.value, "factors": list(risk.factors)},
    )


class EnforcementAgent(BaseAgent):
    """Consumes supply-chain alerts and decides on enforcement."""

    subscribed_channels = (SUPPLY_CHAIN_ALERT,)

    def __init__(
        self,
        agent_id: str = "enforcement_agent",
        event_bus: Optional[EventBus] = None,
        product_store: Optional[ProductStatusStore] = None,
        auto_enforcement_enabled: bool = False,
        history_limit: int = 1000
    ):
        capabilities = [
            AgentCapability(
                name="enforcement",
                description="Block products, flag suppliers or suspend accounts on high risk",
                input_types=[SUPPLY_CHAIN_ALERT, "evaluate_action", "approve_action"],
                output_types=[ENFORCEMENT_EXECUTED]
            )
        ]
        super().__init__(
            agent_id=agent_id,
            agent_type="enforcement_agent",
            capabilities=capabilities,
            event_bus=event_bus
        )
        self.product_store = product_store
        self.auto_enforcement_enabled = auto_enforcement_enabled
        self.pending_actions: Dict[str, EnforcementAction] = {}
        self.executed_actions: Deque[EnforcementAction] = deque(maxlen=history_limit)

    async def process_message(self, message: AgentMessage) -> AgentResponse:
        """Dispatch on message type."""
        if message.message_type == SUPPLY_CHAIN_ALERT:
            action = await self.handle_alert(message.payload)
            return AgentResponse(
                success=True,
                result={"action": action.model_dump(mode="json") if action else None}
            )

        elif message.message_type == "evaluate_action":
            payload = message.payload
            action = await self.submit(
                EnforcementTarget(payload["target_type"]),
                payload["target_id"],
                RiskAssessment(**payload["risk"])
            )
            return AgentResponse(
                success=True,
                result={"action": action.model_dump(mode="json") if action else None}
            )

        elif message.message_type == "approve_action":
            action = await self.approve(message.payload["action_id"])
            return AgentResponse(success=True, result={"action": action.model_dump(mode="json")})

        else:
            return AgentResponse(
                success=False,
                error=f"Unknown message type: {message.message_type}"
            )

    async def handle_alert(self, alert: Dict[str, Any]) -> Optional[EnforcementAction]:
        """Map a supply-chain alert onto a target and evaluate it."""
        metadata = alert.get("metadata") or {}
        if alert.get("product_id"):
            target_type, target_id = EnforcementTarget.PRODUCT, alert["product_id"]
        elif alert.get("batch_id"):
            target_type, target_id = EnforcementTarget.BATCH, alert["batch_id"]
        elif alert.get("supplier_id"):
            target_type, target_id = EnforcementTarget.SUPPLIER, alert["supplier_id"]
        else:
            self.logger.debug("Alert has no enforceable target", alert_id=alert.get("alert_id"))
            return None

        risk = RiskAssessment(
            risk_score=alert.get("risk_score", 0.0),
            risk_level=RiskLevel(alert.get("severity", RiskLevel.LOW.value)),
            fraud_count=metadata.get("fraud_count"),
            verification_failure_rate=metadata.get("verification_failure_rate"),
            suspicious_rate=metadata.get("suspicious_product_rate"),
            factors=metadata.get("factors", []),
        )
        return await self.submit(target_type, target_id, risk)

    async def submit(
        self,
        target_type: EnforcementTarget,
        target_id: str,
        risk: RiskAssessment
    ) -> Optional[EnforcementAction]:
        """Evaluate and either execute or queue an action."""
        action = evaluate_action(target_type, target_id, risk)
        if action is None:
            return None

        if self.auto_enforcement_enabled:
            return await self.execute(action)

        self.pending_actions[action.action_id] = action
        self.logger.info(
            "Enforcement action pending review",
            action_id=action.action_id,
            action_type=action.type.value,
            target_id=target_id
        )
        return action

    async def approve(self, action_id: str) -> EnforcementAction:
        """
        Execute a pending action after review.

        The action stays pending if execution fails.

        Raises:
            KeyError: If no pending action has the given id
        """
        action = self.pending_actions[action_id]
        executed = await self.execute(action)
        del self.pending_actions[action_id]
        return executed

    async def execute(self, action: EnforcementAction) -> EnforcementAction:
        """
        Apply an action to the product store and publish it.

        Products and batches are blocked. Suppliers have every registered
        product revoked or flagged. Account suspension is published only.
        """
        updated = await self._apply(action)
        executed = action.model_copy(update={
            "executed": True,
            "executed_at": utc_now(),
            "metadata": {**action.metadata, "products_updated": updated},
        })
        self.executed_actions.append(executed)
        self.logger.warning(
            "Enforcement action executed",
            action_id=executed.action_id,
            action_type=executed.type.value,
            target_type=executed.target_type.value,
            target_id=executed.target_id,
            products_updated=updated
        )
        await self.publish(ENFORCEMENT_EXECUTED, executed.model_dump(mode="json"))
        return executed

    async def _apply(self, action: EnforcementAction) -> int:
        if action.target_type == EnforcementTarget.USER:
            return 0

        if self.product_store is None:
            raise RuntimeError("Product status store is not configured")

        if action.target_type == EnforcementTarget.PRODUCT:
            return await self.product_store.set_product_status(
                action.target_id, ProductStatus.BLOCKED.value
            )
        if action.target_type == EnforcementTarget.BATCH:
            return await self.product_store.set_batch_status(
                action.target_id, ProductStatus.BLOCKED.value
            )

        status = (
            ProductStatus.REVOKED
            if action.type == EnforcementActionType.REVOKE_REGISTRATION
            else ProductStatus.FLAGGED
        )
        return await self.product_store.set_manufacturer_status(action.target_id, status.value)

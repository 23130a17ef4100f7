"""
Message envelope carried on the event bus and handled by agents.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..utils.time_utils import utc_now

VERIFICATION_COMPLETED = "verification.completed"
SUPPLY_CHAIN_ALERT = "supply_chain.alert"


class AgentMessage(BaseModel):
    """Message structure for bus events and agent requests."""
    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender_id: str = Field(..., description="ID of the sending component")
    recipient_id: Optional[str] = Field(None, description="ID of recipient agent (None for broadcast)")
    message_type: str = Field(..., description="Type of message")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload")
    timestamp: datetime = Field(default_factory=utc_now)
    correlation_id: Optional[str] = Field(None, description="ID for request/response correlation")
    priority: int = Field(0, description="Message priority (higher = more urgent)")

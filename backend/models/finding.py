from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Confidence(str, Enum):
    CERTAIN = "certain"
    FIRM = "firm"
    TENTATIVE = "tentative"


class Finding(BaseModel):
    """Result of one detection rule firing against one response."""
    type: str
    evidence: str = ""
    severity: Severity = Severity.INFO
    confidence: Confidence = Confidence.TENTATIVE
    parameter: Optional[str] = None
    payload: Optional[str] = None


class Issue(BaseModel):
    """Record handed to the issue sink, one per Finding."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    timestamp: str = ""
    plugin_id: str
    title: str
    severity: Severity
    confidence: Confidence
    description: str = ""
    affected_request_id: Optional[str] = None

import logging
from abc import ABC, abstractmethod
from typing import Optional

from injectors.payloads import PAYLOADS, PayloadCatalog, PayloadCategory
from models.finding import Confidence, Finding, Severity
from models.http import BaseRequest, HttpResponse

log = logging.getLogger(__name__)

# How much of a payload is quoted back in evidence text
EVIDENCE_PAYLOAD_CAP = 100


def excerpt(payload: str, limit: int = EVIDENCE_PAYLOAD_CAP) -> str:
    """Truncated payload for evidence strings."""
    if len(payload) <= limit:
        return payload
    return payload[:limit] + "..."


class BaseInjector(ABC):
    """
    Abstract base class for the per-category detection rules.

    Subclass and implement:
      - analyze_response()

    Payloads come from the static catalog; the mutation engine decides
    where they go, the injector only judges what came back.
    """

    category: PayloadCategory
    description: str = ""

    @property
    def name(self) -> str:
        return self.category.value

    def get_payloads(self, catalog: PayloadCatalog = PAYLOADS) -> tuple[str, ...]:
        """Return this category's slice of the catalog."""
        return tuple(catalog.get(self.category, ()))

    @abstractmethod
    def analyze_response(
        self, payload: str, response: HttpResponse, request: BaseRequest,
    ) -> Optional[Finding]:
        """Return a Finding if *response* shows this category's signal, else None."""
        ...

    def _finding(
        self,
        type: str,
        evidence: str,
        severity: Severity,
        confidence: Confidence,
        payload: str,
    ) -> Finding:
        log.debug("%s rule fired: %s", self.name, type)
        return Finding(
            type=type,
            evidence=evidence,
            severity=severity,
            confidence=confidence,
            payload=payload,
        )

from typing import Optional

from injectors.base import BaseInjector, excerpt
from injectors.payloads import PayloadCategory
from models.finding import Confidence, Finding, Severity
from models.http import BaseRequest, HttpResponse

# Content types a browser will render as markup
_MARKUP_TYPES = ("text/html", "application/xhtml+xml", "application/xml")


class XSSInjector(BaseInjector):
    """Reflected Cross-Site Scripting: verbatim payload reflection graded by content type."""

    category = PayloadCategory.XSS
    description = "Tests for reflected XSS by looking for the unescaped payload in the response"

    FINDING_TYPE = "Cross-Site Scripting (Reflected)"

    def analyze_response(
        self, payload: str, response: HttpResponse, request: BaseRequest,
    ) -> Optional[Finding]:
        if payload not in response.body:
            return None

        content_type = response.content_type

        if any(t in content_type for t in _MARKUP_TYPES):
            severity, confidence = Severity.HIGH, Confidence.FIRM
            evidence = (
                f"Payload reflected in HTML/XML response body "
                f"(Content-Type: {content_type}): {excerpt(payload)}"
            )
        elif "application/json" in content_type:
            # Only exploitable if the JSON is later embedded in a page unsafely
            severity, confidence = Severity.LOW, Confidence.TENTATIVE
            evidence = (
                f"Payload reflected in JSON response body (Content-Type: {content_type}). "
                f"Not directly exploitable unless the JSON is rendered into HTML unsafely: "
                f"{excerpt(payload)}"
            )
        else:
            severity, confidence = Severity.LOW, Confidence.TENTATIVE
            evidence = (
                f"Payload reflected in response body "
                f"(Content-Type: {content_type or 'Not set'}): {excerpt(payload)}"
            )

        return self._finding(self.FINDING_TYPE, evidence, severity, confidence, payload)

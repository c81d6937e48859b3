from typing import Optional

from injectors.base import BaseInjector, excerpt
from injectors.payloads import PayloadCategory
from models.finding import Confidence, Finding, Severity
from models.http import BaseRequest, HttpResponse


def _squash(text: str) -> str:
    return "".join(text.split())


class SSTIInjector(BaseInjector):
    """Server-Side Template Injection: Jinja2, Twig, Freemarker, Velocity, ERB, Mako, Razor, T4."""

    category = PayloadCategory.SSTI
    description = "Tests for template injection by checking whether 7*7 was evaluated to 49"

    FINDING_TYPE = "Server-Side Template Injection (Potential)"
    EXPECTED_PRODUCT = "49"

    # One 7*7 probe per template syntax, compared whitespace-insensitively
    MATH_TEMPLATES = frozenset(_squash(t) for t in (
        "{{ 7*7 }}",      # Jinja2 / Twig / Pebble
        "${7*7}",         # Freemarker / Velocity / EL
        "<%= 7*7 %>",     # ERB
        "#{ 7*7 }",       # Mako / Ruby interpolation
        "<#= 7*7 #>",     # T4
        "@(7*7)",         # Razor
    ))

    def is_math_template(self, payload: str) -> bool:
        return _squash(payload) in self.MATH_TEMPLATES

    def analyze_response(
        self, payload: str, response: HttpResponse, request: BaseRequest,
    ) -> Optional[Finding]:
        # No baseline diff: "49" anywhere in the body counts
        if self.EXPECTED_PRODUCT not in response.body:
            return None
        if not self.is_math_template(payload):
            return None
        return self._finding(
            self.FINDING_TYPE,
            f"Numerical expression '{payload}' potentially evaluated to "
            f"'{self.EXPECTED_PRODUCT}' in response. Original payload: {excerpt(payload)}",
            Severity.HIGH,
            Confidence.TENTATIVE,
            payload,
        )

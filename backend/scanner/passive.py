"""
Passive checks: heuristics over one observed exchange, no extra traffic.

The three checks are independent and return plain description strings;
run_passive_checks() turns them into Issues for the sink.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable

from config import PLUGIN_ID
from models.finding import Confidence, Issue, Severity
from models.http import BaseRequest, HttpResponse

log = logging.getLogger(__name__)

REQUIRED_SECURITY_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-frame-options",
    "referrer-policy",
    "permissions-policy",
)

VERSION_HEADERS = ("server", "x-powered-by", "x-aspnet-version")

_VERSION_RE = re.compile(r"[\d.]+")

# Reflection bounds: shorter values match by accident, longer ones are noise
_REFLECT_MIN_EXCLUSIVE = 2
_REFLECT_MAX_EXCLUSIVE = 100


def _lowered_headers(response: HttpResponse) -> dict[str, str]:
    return {k.lower(): str(v) for k, v in response.headers.items()}


def check_missing_security_headers(response: HttpResponse) -> list[str]:
    """Missing security headers and a non-``nosniff`` X-Content-Type-Options."""
    findings: list[str] = []
    headers = _lowered_headers(response)

    for name in REQUIRED_SECURITY_HEADERS:
        if name not in headers:
            findings.append(f"Missing security header: {name}")

    xcto = headers.get("x-content-type-options")
    if not xcto:
        findings.append("Missing security header: x-content-type-options")
    elif xcto.lower() != "nosniff":
        findings.append(
            f'Insecure value for x-content-type-options: "{xcto}". Expected "nosniff".'
        )
    return findings


def check_reflected_parameters(request: BaseRequest, response: HttpResponse) -> list[str]:
    """Names of query parameters whose value shows up verbatim in the body.

    Body parameters are not checked.
    """
    body = response.body
    if not body:
        return []
    reflected: dict[str, None] = {}
    for param in request.query_params:
        value = param.value
        if _REFLECT_MIN_EXCLUSIVE < len(value) < _REFLECT_MAX_EXCLUSIVE and value in body:
            reflected.setdefault(param.name, None)
    return list(reflected)


def check_server_version_disclosure(response: HttpResponse) -> list[str]:
    """Headers that look like they carry a product version."""
    findings: list[str] = []
    headers = _lowered_headers(response)
    for name in VERSION_HEADERS:
        value = headers.get(name)
        if not value or not _VERSION_RE.search(value):
            continue
        # Filters bare product names such as "Apache"
        if len(value) > len(name) + 2:
            findings.append(f"Potential version disclosure via header: {name}: {value}")
    return findings


def run_passive_checks(
    request: BaseRequest,
    response: HttpResponse,
    issue_sink: Callable[[Issue], None],
) -> int:
    """Passive trigger for one exchange.  Returns the number of issues emitted."""
    now = datetime.now(timezone.utc).isoformat()
    issues: list[Issue] = []

    for description in check_missing_security_headers(response):
        issues.append(Issue(
            timestamp=now,
            plugin_id=PLUGIN_ID,
            title="Insecure Header Configuration",
            severity=Severity.LOW,
            confidence=Confidence.CERTAIN,
            description=description,
            affected_request_id=request.id,
        ))

    for name in check_reflected_parameters(request, response):
        issues.append(Issue(
            timestamp=now,
            plugin_id=PLUGIN_ID,
            title=f"Reflected Input Parameter: {name}",
            severity=Severity.INFO,
            confidence=Confidence.TENTATIVE,
            description=(
                f'The value of parameter "{name}" was found reflected in the response body. '
                "This might indicate cross-site scripting if user input is not properly "
                "sanitized. Manual verification is recommended."
            ),
            affected_request_id=request.id,
        ))

    for description in check_server_version_disclosure(response):
        issues.append(Issue(
            timestamp=now,
            plugin_id=PLUGIN_ID,
            title="Server Version Disclosure",
            severity=Severity.INFO,
            confidence=Confidence.FIRM,
            description=(
                f"{description}\n\nLeaking specific software versions can help "
                "attackers identify known vulnerabilities."
            ),
            affected_request_id=request.id,
        ))

    for issue in issues:
        try:
            issue_sink(issue)
        except Exception:
            log.exception("issue sink rejected %r", issue.title)
    log.debug("passive checks on %s: %d issues", request.full_url, len(issues))
    return len(issues)

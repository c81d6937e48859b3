"""
Active scan sweep: mutation engine x response analyzer for one base request.

Mutations are consumed strictly one at a time: send, analyze, report,
then a fixed throttle delay whether the send worked or not.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from config import PLUGIN_ID, REQUEST_THROTTLE
from injectors.analyzer import analyze
from injectors.mutator import Mutation, MutationEngine, MutationKind
from injectors.payloads import PAYLOADS, PayloadCatalog
from models.finding import Finding, Issue
from models.http import BaseRequest, HttpResponse
from scanner.errors import TransientDispatchError, UnhandledSweepError

log = logging.getLogger(__name__)

Sender = Callable[[BaseRequest], Awaitable[HttpResponse]]
IssueSink = Callable[[Issue], None]

# Title wording per injection location
_TITLE_FORMATS = {
    MutationKind.QUERY_REPLACE: "{type} in parameter: {name}",
    MutationKind.QUERY_APPEND: "{type} via new parameter: {name}",
    MutationKind.FORM_REPLACE: "{type} in FORM parameter: {name}",
    MutationKind.FORM_APPEND: "{type} via new FORM parameter: {name}",
    MutationKind.JSON_REPLACE: "{type} in JSON key: {name}",
}

_PARAM_LABELS = {
    MutationKind.QUERY_REPLACE: "Affected Parameter",
    MutationKind.QUERY_APPEND: "Injected Parameter",
    MutationKind.FORM_REPLACE: "Affected FORM Parameter",
    MutationKind.FORM_APPEND: "Injected FORM Parameter",
    MutationKind.JSON_REPLACE: "Affected JSON Key",
}


def build_issue(finding: Finding, mutation: Mutation, base: BaseRequest) -> Issue:
    """Turn an active-scan Finding into the record handed to the issue sink."""
    description = (
        f"Vulnerability: {finding.type}\n"
        f"{_PARAM_LABELS[mutation.kind]}: {mutation.parameter}\n"
        f"Payload: {mutation.payload}\n"
        f"Evidence: {finding.evidence}\n\n"
        f"Mutated Request: {mutation.request.method} {mutation.request.full_url}\n"
        f"Original Request: {base.method} {base.full_url}"
    )
    return Issue(
        timestamp=datetime.now(timezone.utc).isoformat(),
        plugin_id=PLUGIN_ID,
        title=_TITLE_FORMATS[mutation.kind].format(type=finding.type, name=mutation.parameter),
        severity=finding.severity,
        confidence=finding.confidence,
        description=description,
        affected_request_id=base.id,
    )


class ActiveScanner:
    """Runs the full sweep for one base request and reports issues."""

    def __init__(
        self,
        send: Sender,
        issue_sink: IssueSink,
        catalog: PayloadCatalog = PAYLOADS,
        throttle: float = REQUEST_THROTTLE,
    ) -> None:
        self._send = send
        self._issue_sink = issue_sink
        self._catalog = catalog
        self._throttle = throttle

    async def scan(self, base: BaseRequest, scan_id: str) -> int:
        """Run every mutation against *base*.  Returns the number of issues found.

        Per-mutation send failures are logged and skipped.  Anything else
        is wrapped in UnhandledSweepError.
        """
        try:
            return await self._sweep(base, scan_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise UnhandledSweepError(scan_id, e) from e

    async def _sweep(self, base: BaseRequest, scan_id: str) -> int:
        engine = MutationEngine(base, self._catalog)
        log.info("[%s] sweep started: %s %s (%d mutations)",
                 scan_id, base.method, base.full_url, engine.count())
        issues_found = 0
        sent = 0

        for mutation in engine:
            try:
                response = await self._send(mutation.request)
            except TransientDispatchError as e:
                log.warning("[%s] send failed (%s %s): %s",
                            scan_id, mutation.kind.value, mutation.parameter, e)
            else:
                sent += 1
                finding = analyze(mutation.payload, mutation.category, response, mutation.request)
                if finding is not None:
                    finding = finding.model_copy(update={"parameter": mutation.parameter})
                    issues_found += 1
                    log.info("[%s] issue found: %s in %s with payload %r",
                             scan_id, finding.type, mutation.parameter, mutation.payload)
                    self._report(build_issue(finding, mutation, base))
            await asyncio.sleep(self._throttle)

        log.info("[%s] sweep finished: %d sent, %d issues", scan_id, sent, issues_found)
        return issues_found

    def _report(self, issue: Issue) -> None:
        try:
            self._issue_sink(issue)
        except Exception:
            log.exception("issue sink rejected %r", issue.title)

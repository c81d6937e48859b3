"""Category -> detection rule dispatch for active scan responses."""

from types import MappingProxyType
from typing import Mapping, Optional

from injectors.base import BaseInjector
from injectors.payloads import PayloadCategory
from injectors.sql_injector import SQLInjector
from injectors.ssti_injector import SSTIInjector
from injectors.xss_injector import XSSInjector
from models.finding import Finding
from models.http import BaseRequest, HttpResponse

ANALYZERS: Mapping[PayloadCategory, BaseInjector] = MappingProxyType({
    PayloadCategory.XSS: XSSInjector(),
    PayloadCategory.SQLI: SQLInjector(),
    PayloadCategory.SSTI: SSTIInjector(),
})


def analyze(
    payload: str,
    category: PayloadCategory,
    response: HttpResponse,
    request: BaseRequest,
) -> Optional[Finding]:
    """Classify one mutated exchange.  At most one Finding per call."""
    injector = ANALYZERS.get(category)
    if injector is None:
        return None
    return injector.analyze_response(payload, response, request)

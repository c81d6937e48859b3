"""
Single-fault request mutation.

Every Mutation differs from its base request in exactly one field:
one query parameter, one form field, or one JSON key. That way a finding can
be pinned on a single parameter.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator
from urllib.parse import parse_qsl, urlencode

from injectors.payloads import PAYLOADS, PayloadCatalog, PayloadCategory, iter_payloads
from models.http import BaseRequest, QueryParam
from scanner.errors import MalformedBodyError

log = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


class MutationKind(str, Enum):
    QUERY_REPLACE = "query_replace"
    QUERY_APPEND = "query_append"
    FORM_REPLACE = "form_replace"
    FORM_APPEND = "form_append"
    JSON_REPLACE = "json_replace"


@dataclass(frozen=True)
class Mutation:
    """A mutated request plus what was injected where."""

    category: PayloadCategory
    payload: str
    parameter: str
    kind: MutationKind
    request: BaseRequest


def probe_param_name(category: PayloadCategory) -> str:
    """Synthetic query parameter appended for *category*."""
    return f"ept_probe_{category.value}"


def probe_field_name(category: PayloadCategory) -> str:
    """Synthetic form field appended for *category*."""
    return f"ept_probe_form_{category.value}"


def parse_json_object(body: str) -> dict:
    """Parse *body* as a JSON object or raise MalformedBodyError."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedBodyError(f"invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise MalformedBodyError(f"JSON body is a {type(data).__name__}, not an object")
    return data


def _set_form_field(pairs: list[tuple[str, str]], name: str, value: str) -> list[tuple[str, str]]:
    """URLSearchParams.set semantics: first *name* gets *value*, later duplicates go."""
    out: list[tuple[str, str]] = []
    replaced = False
    for k, v in pairs:
        if k != name:
            out.append((k, v))
        elif not replaced:
            out.append((k, value))
            replaced = True
    return out


class MutationEngine:
    """Restartable, lazy sequence of Mutations for one base request.

    Order: category (catalog order) -> payload -> query replacements,
    query append, form replacements + form append (form bodies only),
    JSON string-key replacements (JSON object bodies only).
    """

    def __init__(self, base: BaseRequest, catalog: PayloadCatalog = PAYLOADS) -> None:
        self.base = base
        self.catalog = catalog
        content_type = base.content_type

        self._is_form = FORM_CONTENT_TYPE in content_type
        self._form_pairs: list[tuple[str, str]] = []
        self._form_names: list[str] = []
        if self._is_form:
            self._form_pairs = parse_qsl(base.body, keep_blank_values=True)
            # distinct names, first-seen order
            self._form_names = list(dict.fromkeys(k for k, _ in self._form_pairs))

        self._json_body: dict | None = None
        self._json_keys: list[str] = []
        if JSON_CONTENT_TYPE in content_type and base.body.strip():
            try:
                self._json_body = parse_json_object(base.body)
            except MalformedBodyError as e:
                log.warning("skipping JSON body mutations for %s: %s", base.full_url, e)
            else:
                self._json_keys = [
                    k for k, v in self._json_body.items() if isinstance(v, str)
                ]

    def __iter__(self) -> Iterator[Mutation]:
        return self._generate()

    def count(self) -> int:
        """Number of mutations one pass will yield."""
        per_payload = len(self.base.query_params) + 1 + len(self._json_keys)
        if self._is_form:
            per_payload += len(self._form_names) + 1
        return per_payload * sum(1 for _ in iter_payloads(self.catalog))

    # ── Internals ─────────────────────────────────────────────────────

    def _generate(self) -> Iterator[Mutation]:
        for category, payload in iter_payloads(self.catalog):
            yield from self._query_mutations(category, payload)
            if self._is_form:
                yield from self._form_mutations(category, payload)
            if self._json_body is not None:
                yield from self._json_mutations(category, payload)

    def _query_mutations(self, category: PayloadCategory, payload: str) -> Iterator[Mutation]:
        params = self.base.query_params
        for i, param in enumerate(params):
            mutated = params[:i] + (QueryParam(name=param.name, value=payload),) + params[i + 1:]
            yield Mutation(
                category, payload, param.name, MutationKind.QUERY_REPLACE,
                self.base.model_copy(update={"query_params": mutated}),
            )

        name = probe_param_name(category)
        yield Mutation(
            category, payload, name, MutationKind.QUERY_APPEND,
            self.base.model_copy(update={
                "query_params": params + (QueryParam(name=name, value=payload),),
            }),
        )

    def _form_mutations(self, category: PayloadCategory, payload: str) -> Iterator[Mutation]:
        for name in self._form_names:
            body = urlencode(_set_form_field(self._form_pairs, name, payload))
            yield Mutation(
                category, payload, name, MutationKind.FORM_REPLACE,
                self.base.model_copy(update={"body": body}),
            )

        name = probe_field_name(category)
        body = urlencode(self._form_pairs + [(name, payload)])
        yield Mutation(
            category, payload, name, MutationKind.FORM_APPEND,
            self.base.model_copy(update={"body": body}),
        )

    def _json_mutations(self, category: PayloadCategory, payload: str) -> Iterator[Mutation]:
        for key in self._json_keys:
            data = dict(self._json_body)
            data[key] = payload
            yield Mutation(
                category, payload, key, MutationKind.JSON_REPLACE,
                self.base.model_copy(update={"body": json.dumps(data)}),
            )

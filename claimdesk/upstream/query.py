"""
Request descriptors and declarative query variants.

A QueryPlan is an ordered list of QueryVariants for one logical operation,
richest first. The last variant is the safe minimum: the request most
likely to be satisfiable by the narrowest permission set. Plans are static
configuration (see claimdesk.catalog); rendering a variant with the
request context yields the concrete UpstreamRequest for one attempt.

Two kinds of plans share this mechanism:
- field-set plans, where each variant asks for a subset of the previous
  variant's fields (strict=True, validated);
- location plans, where variants probe alternative collections, filter
  shapes or legacy column names (strict=False).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote


@dataclass(frozen=True)
class UpstreamRequest:
    """A fully formed request against the upstream API."""

    method: str
    path: str
    params: tuple[tuple[str, str], ...] = ()
    json: Any = None

    def describe(self) -> str:
        return f"{self.method} {self.path}"


@dataclass(frozen=True)
class QueryVariant:
    """
    One candidate shape of a request.

    `path` and the values of `params` are str.format templates filled from
    the request context (e.g. "{claim_id}"). Path substitutions are URL
    quoted; params are encoded by the HTTP client.
    """

    ordinal: int
    path: str
    fields: tuple[str, ...] = ()
    params: tuple[tuple[str, str], ...] = ()
    method: str = "GET"

    @property
    def field_set(self) -> frozenset[str]:
        return frozenset(self.fields)

    def render(self, context: Mapping[str, Any], json: Any = None) -> UpstreamRequest:
        quoted = {k: quote(str(v), safe="") for k, v in context.items()}
        path = self.path.format(**quoted)
        params = [(k, str(v).format(**context)) for k, v in self.params]
        if self.fields:
            params.append(("fields", ",".join(self.fields)))
        return UpstreamRequest(method=self.method, path=path, params=tuple(params), json=json)


@dataclass(frozen=True)
class QueryPlan:
    """Ordered variants for one logical operation."""

    name: str
    variants: tuple[QueryVariant, ...]
    not_found_degrades: bool = False
    strict: bool = True

    def __post_init__(self):
        if not self.variants:
            raise ValueError(f"Query plan '{self.name}' has no variants")

        ordinals = [v.ordinal for v in self.variants]
        if ordinals != sorted(set(ordinals)):
            raise ValueError(f"Query plan '{self.name}' ordinals must be strictly increasing")

        if self.strict:
            for prev, nxt in zip(self.variants, self.variants[1:]):
                if not nxt.field_set <= prev.field_set:
                    extra = sorted(nxt.field_set - prev.field_set)
                    raise ValueError(
                        f"Query plan '{self.name}' variant {nxt.ordinal} asks for fields "
                        f"not in variant {prev.ordinal}: {extra}"
                    )

    @property
    def safe_minimum(self) -> QueryVariant:
        return self.variants[-1]

    def __len__(self) -> int:
        return len(self.variants)

    def __iter__(self):
        return iter(self.variants)


def build_plan(
    name: str,
    candidates: list[dict],
    *,
    not_found_degrades: bool = False,
    strict: bool = True,
    method: str = "GET",
) -> QueryPlan:
    """
    Build a plan from candidate dicts, numbering ordinals in order.

    Each candidate has a `path` and optional `fields` (sequence) and
    `params` (mapping or sequence of pairs).
    """
    variants = []
    for ordinal, cand in enumerate(candidates):
        params = cand.get("params") or ()
        if isinstance(params, Mapping):
            params = tuple(params.items())
        variants.append(
            QueryVariant(
                ordinal=ordinal,
                path=cand["path"],
                fields=tuple(cand.get("fields") or ()),
                params=tuple(params),
                method=cand.get("method", method),
            )
        )
    return QueryPlan(
        name=name,
        variants=tuple(variants),
        not_found_degrades=not_found_degrades,
        strict=strict,
    )

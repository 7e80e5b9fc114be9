"""
Tests for declarative query plans and the query catalogue.
"""

import pytest

from claimdesk import catalog
from claimdesk.upstream import QueryPlan, QueryVariant, build_plan


class TestQueryPlanValidation:
    """Plan construction invariants."""

    def test_empty_plan_is_rejected(self):
        with pytest.raises(ValueError, match="no variants"):
            QueryPlan(name="empty", variants=())

    def test_ordinals_must_increase(self):
        variants = (
            QueryVariant(ordinal=1, path="/items/claims", fields=("id",)),
            QueryVariant(ordinal=0, path="/items/claims", fields=("id",)),
        )
        with pytest.raises(ValueError, match="strictly increasing"):
            QueryPlan(name="unordered", variants=variants)

    def test_strict_plan_requires_subset_chain(self):
        with pytest.raises(ValueError, match="not in variant 0"):
            build_plan(
                "widening",
                [
                    {"path": "/items/claims", "fields": ["id"]},
                    {"path": "/items/claims", "fields": ["id", "claim_number"]},
                ],
            )

    def test_location_plan_skips_subset_check(self):
        plan = build_plan(
            "locations",
            [
                {"path": "/items/claim_notes", "fields": ["id", "created_at"]},
                {"path": "/items/notes", "fields": ["id", "date_created"]},
            ],
            strict=False,
        )
        assert len(plan) == 2

    def test_safe_minimum_is_last_variant(self):
        plan = build_plan(
            "claims",
            [
                {"path": "/items/claims", "fields": ["id", "claim_number"]},
                {"path": "/items/claims", "fields": ["id"]},
            ],
        )
        assert plan.safe_minimum.ordinal == 1
        assert plan.safe_minimum.field_set == frozenset({"id"})


class TestVariantRender:
    def test_render_fills_path_and_params(self):
        variant = QueryVariant(
            ordinal=0,
            path="/items/claims/{claim_id}",
            fields=("id", "status.*"),
            params=(("filter[claim][_eq]", "{claim_id}"), ("limit", "{limit}")),
        )
        request = variant.render({"claim_id": 42, "limit": 10})

        assert request.method == "GET"
        assert request.path == "/items/claims/42"
        assert ("filter[claim][_eq]", "42") in request.params
        assert ("limit", "10") in request.params
        assert ("fields", "id,status.*") in request.params

    def test_path_substitution_is_quoted(self):
        variant = QueryVariant(ordinal=0, path="/items/claims/{claim_id}")
        request = variant.render({"claim_id": "../users/1"})
        assert request.path == "/items/claims/..%2Fusers%2F1"

    def test_render_carries_body(self):
        variant = QueryVariant(ordinal=0, path="/items/claim_notes", method="POST")
        request = variant.render({}, json={"note": "hi"})
        assert request.method == "POST"
        assert request.json == {"note": "hi"}
        assert request.params == ()


class TestCatalog:
    """The shipped plans are well-formed."""

    @pytest.mark.parametrize("plan", catalog.ALL_PLANS, ids=lambda p: p.name)
    def test_every_plan_has_variants(self, plan):
        assert len(plan) >= 1
        assert [v.ordinal for v in plan] == list(range(len(plan)))

    @pytest.mark.parametrize(
        "plan", [p for p in catalog.ALL_PLANS if p.strict], ids=lambda p: p.name
    )
    def test_strict_plans_narrow_monotonically(self, plan):
        for prev, nxt in zip(plan.variants, plan.variants[1:]):
            assert nxt.field_set <= prev.field_set

    def test_claim_detail_drops_address_lines_first(self):
        full, safe = catalog.CLAIM_DETAIL.variants
        assert "loss_location.street_1" in full.field_set
        assert "loss_location.street_1" not in safe.field_set
        assert "loss_location.city" in safe.field_set

    def test_notes_plan_probes_collections_and_timestamp_columns(self):
        paths = {v.path for v in catalog.NOTES_LIST}
        assert paths == {"/items/claim_notes", "/items/claims_notes", "/items/notes"}
        assert catalog.NOTES_LIST.not_found_degrades
        timestamp_fields = {f for v in catalog.NOTES_LIST for f in v.fields} & {"created_at", "date_created"}
        assert timestamp_fields == {"created_at", "date_created"}

    def test_tasks_plan_ends_with_alternate_filter(self):
        last = catalog.TASKS_LIST.safe_minimum
        assert dict(last.params).get("filter[claim][_eq]") == "{claim_id}"

    @pytest.mark.parametrize("plan", [catalog.TASKS_LIST, catalog.CURRENT_USER], ids=lambda p: p.name)
    def test_relation_plans_are_checked_field_sets(self, plan):
        """Safe variants keep the bare relation key, which the richer variants also request."""
        assert plan.strict
        safe = plan.safe_minimum.field_set
        assert not any("." in f for f in safe)
        assert safe <= plan.variants[0].field_set

    def test_write_plans_use_post(self):
        for plan in (catalog.NOTES_CREATE, catalog.PARTICIPANTS_CREATE):
            assert all(v.method == "POST" for v in plan)

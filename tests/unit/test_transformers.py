"""
Unit tests for the transformation engine and provider rules
"""

import pytest
from core.exceptions import ConfigurationError, TransformationError
from etl.transformers.engine import TransformationEngine, resolve_path
from etl.transformers.rules import (
    IRENA_RULE,
    MTF_RULE,
    NASA_POWER_RULE,
    WORLD_BANK_RULE,
    get_all_transformation_rules,
    get_transformation_rule,
)
from schemas.transformations import FieldMapping, PostProcessingStep, TransformationRule
from tests.helpers import make_record, world_bank_row


def rule_with(mappings, post_processing=None):
    return TransformationRule(
        id="test-transform",
        name="Test",
        source_type="test",
        target_type="test",
        mappings=mappings,
        post_processing=post_processing or [],
    )


class TestResolvePath:

    def test_nested_dict_and_list_segments(self):
        payload = {"geometry": {"coordinates": [36.8, -1.3]}, "country": {"id": "KEN"}}

        assert resolve_path(payload, "country.id") == "KEN"
        assert resolve_path(payload, "geometry.coordinates.1") == -1.3

    def test_missing_segments_resolve_to_none(self):
        assert resolve_path({"a": {"b": 1}}, "a.c.d") is None
        assert resolve_path({"a": [1]}, "a.5") is None
        assert resolve_path({"a": "text"}, "a.b") is None


class TestTransformationEngine:

    def test_get_rule_unknown_key(self):
        engine = TransformationEngine(get_all_transformation_rules())

        with pytest.raises(ConfigurationError):
            engine.get_rule("does-not-exist")

    def test_default_and_transform_applied(self):
        engine = TransformationEngine()
        rule = rule_with([
            FieldMapping(source_field="a.b", target_field="x", transform=lambda v: v * 2),
            FieldMapping(source_field="missing", target_field="y", default_value="fallback"),
        ])

        result = engine.transform_record(make_record("r1", {"a": {"b": 21}}), rule)

        assert result.data == {"x": 42, "y": "fallback"}

    def test_output_keeps_identity_and_extends_lineage(self):
        engine = TransformationEngine()
        record = make_record("r1", {"a": 1})
        record.add_lineage("extraction", "Extract from test")

        result = engine.transform_record(record, rule_with([FieldMapping(source_field="a", target_field="a")]))

        assert result.id == record.id
        assert result.timestamp == record.timestamp
        assert result.metadata.transformation_time is not None
        assert [e.step for e in result.metadata.lineage] == ["extraction", "transformation"]
        # input record untouched
        assert len(record.metadata.lineage) == 1
        assert record.metadata.transformation_time is None

    def test_failing_transform_raises_transformation_error(self):
        engine = TransformationEngine()
        rule = rule_with([FieldMapping(source_field="a", target_field="a", transform=lambda v: 1 / 0)])

        with pytest.raises(TransformationError) as exc_info:
            engine.transform_record(make_record("r1", {"a": 1}), rule)

        assert exc_info.value.context["target_field"] == "a"

    def test_required_mapping_unresolved(self):
        engine = TransformationEngine()
        rule = rule_with([FieldMapping(source_field="a", target_field="a", required=True)])

        with pytest.raises(TransformationError):
            engine.transform_record(make_record("r1", {}), rule)

    def test_batch_skip_isolates_failures(self):
        engine = TransformationEngine()
        rule = rule_with([FieldMapping(source_field="a", target_field="a", transform=lambda v: 10 / v)])
        records = [make_record("r1", {"a": 2}), make_record("r2", {"a": 0}), make_record("r3", {"a": 5})]

        transformed, dropped = engine.transform_batch(records, rule, on_error="skip")

        assert [r.id for r in transformed] == ["r1", "r3"]
        assert [r.id for r, _ in dropped] == ["r2"]

    def test_batch_fail_raises(self):
        engine = TransformationEngine()
        rule = rule_with([FieldMapping(source_field="a", target_field="a", transform=lambda v: 10 / v)])

        with pytest.raises(TransformationError):
            engine.transform_batch([make_record("r1", {"a": 0})], rule, on_error="fail")

    def test_post_processing_runs_in_order(self):
        engine = TransformationEngine()
        calls = []

        def step(name):
            def processor(records):
                calls.append(name)
                return [{name: True} for _ in records]
            return processor

        rule = rule_with(
            [FieldMapping(source_field="a", target_field="a")],
            post_processing=[
                PostProcessingStep(name="second", order=2, processor=step("second")),
                PostProcessingStep(name="first", order=1, processor=step("first")),
            ]
        )

        transformed, _ = engine.transform_batch([make_record("r1", {"a": 1})], rule)

        assert calls == ["first", "second"]
        assert transformed[0].data == {"a": 1, "first": True, "second": True}

    def test_post_processing_length_mismatch(self):
        engine = TransformationEngine()
        rule = rule_with(
            [FieldMapping(source_field="a", target_field="a")],
            post_processing=[PostProcessingStep(name="bad", processor=lambda records: [])]
        )

        with pytest.raises(TransformationError):
            engine.apply_post_processing([make_record("r1", {"a": 1})], rule)


class TestProviderRules:

    def test_rule_registry(self):
        keys = {rule.source_type for rule in get_all_transformation_rules()}

        assert keys == {"world-bank", "nasa-power", "irena", "esmap-hub", "mtf-survey"}
        assert get_transformation_rule("irena") is IRENA_RULE
        assert get_transformation_rule("unknown") is None

    def test_world_bank_mapping(self):
        engine = TransformationEngine([WORLD_BANK_RULE])
        raw = world_bank_row("usa", 2020, "100")
        raw["unit"] = "kWh per capita"

        transformed, dropped = engine.transform_batch([make_record("r1", raw)], WORLD_BANK_RULE)

        data = transformed[0].data
        assert dropped == []
        assert data["countryCode"] == "USA"
        assert data["indicatorCode"] == "EG.ELC.ACCS.ZS"
        assert data["year"] == 2020
        assert data["value"] == 100.0
        assert data["unit"] == "kWh/capita"
        assert data["decimalPlaces"] == 1

    def test_nasa_power_mapping(self):
        engine = TransformationEngine([NASA_POWER_RULE])
        raw = {
            "geometry": {"coordinates": [36.82, -1.29, 1700.0]},
            "properties": {"parameter": {
                "ALLSKY_SFC_SW_DWN": {"ANN": 5.8},
                "WS10M": {"ANN": 3.1},
                "T2M": {"ANN": 19.2},
                "PRECTOTCORR": {"ANN": 2.5},
            }},
            "header": {"start": "20010101", "end": "20201231"},
        }

        data = engine.transform_record(make_record("r1", raw, source_id="nasa-power"), NASA_POWER_RULE).data

        assert data["longitude"] == 36.82
        assert data["latitude"] == -1.29
        assert data["solarIrradiance"] == 5.8
        assert data["startDate"] == "2001-01-01T00:00:00"

    def test_irena_capacity_factor(self):
        engine = TransformationEngine([IRENA_RULE])
        raw = {
            "Country": "Kenya",
            "ISO3 code": "ken",
            "Technology": "Solar photovoltaic",
            "Year": 2022,
            "Electricity Installed Capacity (MW)": 100,
            "Electricity Generation (GWh)": 219,
        }

        transformed, _ = engine.transform_batch([make_record("r1", raw, source_id="irena")], IRENA_RULE)

        data = transformed[0].data
        assert data["countryCode"] == "KEN"
        assert data["indicatorCode"].startswith("IRENA.CAPACITY.")
        assert data["capacityFactor"] == pytest.approx(0.25)

    def test_mtf_access_score_and_tier_clamp(self):
        engine = TransformationEngine([MTF_RULE])
        raw = {"household_id": "HH-1", "country": "Rwanda", "electricity_tier": 9, "cooking_tier": 4}

        transformed, _ = engine.transform_batch([make_record("r1", raw, source_id="mtf-survey")], MTF_RULE)

        data = transformed[0].data
        assert data["electricityTier"] == 0
        assert data["accessScore"] == 40.0
        assert data["accessCategory"] == "Basic Access"

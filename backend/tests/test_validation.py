"""
Tests for slide spec validation and minimal viable spec recovery.
"""

import logging

import pytest

from slidegen.errors import ValidationError
from slidegen.schemas import SlideSpec
from slidegen.services.validation import build_minimal_viable_spec, safe_validate_slide_spec, validate_slide_spec


class TestRequiredFields:
    """Title and layout are mandatory."""

    @pytest.mark.parametrize(
        "candidate",
        [
            {"layout": "title-bullets", "bullets": ["a"]},
            {"title": "", "layout": "title-bullets"},
            {"title": "   ", "layout": "title-bullets"},
            {"title": None, "layout": "title-bullets"},
        ],
    )
    def test_missing_or_blank_title_names_the_field(self, candidate):
        """Test a missing or blank title is reported against 'title'."""
        result = safe_validate_slide_spec(candidate)
        assert not result.success
        assert any(err.startswith("title") for err in result.errors)

    @pytest.mark.parametrize("layout", ["bullets-only", "TITLE", "", None, 3])
    def test_out_of_enum_layout_names_the_field(self, layout):
        """Test an unknown layout is reported against 'layout'."""
        result = safe_validate_slide_spec({"title": "Roadmap", "layout": layout})
        assert not result.success
        assert any(err.startswith("layout") for err in result.errors)

    def test_non_object_candidate(self):
        """Test non-dict input fails without raising."""
        result = safe_validate_slide_spec(["not", "a", "spec"])
        assert not result.success
        assert result.errors[0].startswith("root")

    def test_valid_spec(self, valid_spec_payload):
        """Test a well-formed spec validates and keeps its content."""
        result = safe_validate_slide_spec(valid_spec_payload)
        assert result.success
        assert isinstance(result.data, SlideSpec)
        assert result.data.to_payload() == valid_spec_payload


class TestStrictKeys:
    """Unexpected keys are errors at every level."""

    def test_unknown_top_level_key(self, valid_spec_payload):
        """Test an extra top-level key is rejected."""
        result = safe_validate_slide_spec({**valid_spec_payload, "subtitle": "extra"})
        assert not result.success
        assert "subtitle: Unexpected field" in result.errors

    def test_unknown_nested_key(self):
        """Test an extra key inside a side object is rejected with its path."""
        result = safe_validate_slide_spec(
            {
                "title": "Build vs buy",
                "layout": "two-column",
                "left": {"title": "Build", "bullets": ["Control"], "metrics": []},
                "right": {"title": "Buy", "bullets": ["Speed"]},
            }
        )
        assert not result.success
        assert "left.metrics: Unexpected field" in result.errors

    def test_snake_case_keys_are_not_accepted(self):
        """Test wire keys must be camelCase."""
        result = safe_validate_slide_spec({"title": "T", "layout": "quote", "image_prompt": "x"})
        assert not result.success


class TestChartRules:
    """Chart series must line up with categories."""

    def test_pie_chart_requires_exactly_one_series(self):
        """Test a pie chart with two series is rejected."""
        result = safe_validate_slide_spec(
            {
                "title": "Market share",
                "layout": "chart",
                "chart": {
                    "type": "pie",
                    "categories": ["A", "B"],
                    "series": [{"name": "2023", "data": [60, 40]}, {"name": "2024", "data": [55, 45]}],
                },
            }
        )
        assert not result.success
        assert any(err.startswith("chart") and "exactly one series" in err for err in result.errors)

    def test_pie_chart_with_one_series_passes(self):
        """Test a single-series pie chart is accepted."""
        result = safe_validate_slide_spec(
            {
                "title": "Market share",
                "layout": "chart",
                "chart": {"type": "pie", "categories": ["A", "B"], "series": [{"name": "2024", "data": [55, 45]}]},
            }
        )
        assert result.success

    @pytest.mark.parametrize("chart_type", ["bar", "line"])
    def test_series_length_must_match_categories(self, chart_type):
        """Test bar and line charts reject a series with the wrong number of points."""
        result = safe_validate_slide_spec(
            {
                "title": "Quarterly revenue",
                "layout": "chart",
                "chart": {
                    "type": chart_type,
                    "categories": ["Q1", "Q2", "Q3"],
                    "series": [{"name": "Revenue", "data": [1, 2, 3]}, {"name": "Cost", "data": [1, 2]}],
                },
            }
        )
        assert not result.success
        assert any("series[1]" in err for err in result.errors)


class TestNestedShapes:
    """Tables, colours and content items."""

    def test_comparison_table_row_width(self):
        """Test a table row with the wrong number of cells is rejected."""
        result = safe_validate_slide_spec(
            {
                "title": "Vendor comparison",
                "layout": "comparison-table",
                "comparisonTable": {"columns": ["Vendor", "Price"], "rows": [["A", "$10"], ["B"]]},
            }
        )
        assert not result.success
        assert any(err.startswith("comparisonTable") and "rows[1]" in err for err in result.errors)

    def test_three_digit_hex_is_normalized(self):
        """Test colours are expanded to uppercase 6-digit hex."""
        result = safe_validate_slide_spec(
            {"title": "Brand", "layout": "title", "design": {"accentColor": "#0af"}}
        )
        assert result.success
        assert result.data.design.accent_color == "#00AAFF"

    def test_invalid_color_is_rejected(self):
        """Test a non-hex colour fails validation."""
        result = safe_validate_slide_spec(
            {
                "title": "Metrics",
                "layout": "mixed-content",
                "contentItems": [{"type": "metric", "content": "42%", "color": "teal"}],
            }
        )
        assert not result.success
        assert any("contentItems[0].color" in err for err in result.errors)

    def test_validate_slide_spec_raises_typed_error(self):
        """Test the raising variant carries the error list."""
        with pytest.raises(ValidationError) as excinfo:
            validate_slide_spec({"layout": "quote"})
        assert excinfo.value.validation_errors
        assert not excinfo.value.retryable


class TestMinimalViableSpec:
    """Second-pass recovery keeps only fields that validate on their own."""

    def test_drops_invalid_fields_and_reports_them(self, caplog):
        """Test a broken chart is dropped, the bullets survive, and the drop is logged."""
        candidate = {
            "title": "Channel mix",
            "layout": "chart",
            "bullets": ["Paid search leads"],
            "chart": {
                "type": "pie",
                "categories": ["Paid", "Organic"],
                "series": [{"name": "a", "data": [1, 2]}, {"name": "b", "data": [3, 4]}],
            },
        }
        with caplog.at_level(logging.WARNING, logger="slidegen.pipeline"):
            kept, dropped = build_minimal_viable_spec(candidate)

        assert dropped == ["chart"]
        assert kept == {"title": "Channel mix", "layout": "chart", "bullets": ["Paid search leads"]}
        assert safe_validate_slide_spec(kept).success
        assert "minimal_viable_spec_dropped_fields" in caplog.text
        assert "chart" in caplog.text

    def test_nothing_dropped_for_valid_payload(self, valid_spec_payload):
        """Test a valid payload passes through unchanged."""
        kept, dropped = build_minimal_viable_spec(valid_spec_payload)
        assert dropped == []
        assert kept == valid_spec_payload

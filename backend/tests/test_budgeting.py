"""
Tests for content budgets and layout conformance.
"""

import logging

import pytest

from slidegen.schemas import SlideSpec
from slidegen.services.budgeting import CONTENT_BUDGETS, ELLIPSIS, apply_content_budget, conform_to_layout, truncate_text


class TestTruncateText:
    def test_short_text_is_unchanged(self):
        """Test text within the limit is returned as-is."""
        assert truncate_text("Ship it", 80) == "Ship it"

    @pytest.mark.parametrize("limit", [12, 20, 33, 50])
    def test_cut_on_word_boundary(self, limit):
        """Test long text is cut to the limit on a word boundary with an ellipsis."""
        text = "Consolidate vendor contracts to reduce annual software spend by a fifth"
        result = truncate_text(text, limit)
        assert len(result) <= limit
        assert result.endswith(ELLIPSIS)
        stem = result[: -len(ELLIPSIS)]
        assert text.startswith(stem)
        assert text[len(stem)] in " ,"

    def test_tiny_limit(self):
        """Test a limit too small for any word still respects the limit."""
        assert truncate_text("Consolidate", 1) == ELLIPSIS


class TestContentBudget:
    def test_presets(self):
        """Test the three length presets."""
        assert CONTENT_BUDGETS["short"].max_bullets == 3
        assert CONTENT_BUDGETS["medium"].max_paragraph_chars == 600
        assert CONTENT_BUDGETS["long"].max_bullet_chars == 160

    def test_trims_bullets_paragraph_and_sides(self):
        """Test every text field is held to the preset."""
        words = "word " * 200
        spec = SlideSpec.model_validate(
            {
                "title": "Roadmap",
                "layout": "two-column",
                "left": {"title": "Now", "bullets": [words] * 6},
                "right": {"title": "Next", "paragraph": words},
            }
        )
        trimmed = apply_content_budget(spec, "short")

        assert len(trimmed.left.bullets) == 3
        assert all(len(row) <= 80 for row in trimmed.left.bullets)
        assert len(trimmed.right.paragraph) <= 300
        assert trimmed.left.title == "Now"

    @pytest.mark.parametrize(
        "bullets",
        [
            [f"Point {i}: " + "expand the partner channel into new regional markets " * 3 for i in range(10)],
            [f"Point {i}" for i in range(10)],
            ["Short"] * 4 + ["x" * 200] * 6,
        ],
    )
    def test_short_target_on_ten_bullets(self, bullets):
        """Test ten bullets under the short preset keep at most three, each within 80 characters."""
        spec = SlideSpec.model_validate({"title": "Channel plan", "layout": "title-bullets", "bullets": bullets})

        trimmed = apply_content_budget(spec, "short")

        assert len(trimmed.bullets) <= 3
        for original, row in zip(bullets, trimmed.bullets):
            assert len(row) <= 80
            if row != original:
                assert row.endswith(ELLIPSIS)

    def test_unknown_length_uses_medium(self):
        """Test an unrecognised length falls back to the medium preset."""
        spec = SlideSpec.model_validate({"title": "T", "layout": "title-bullets", "bullets": [f"b{i}" for i in range(9)]})
        assert len(apply_content_budget(spec, "epic").bullets) == 5


class TestConformToLayout:
    def test_conforming_spec_is_returned_unchanged(self, valid_spec_payload):
        """Test nothing changes when fields already match the layout."""
        spec = SlideSpec.model_validate(valid_spec_payload)
        assert conform_to_layout(spec) is spec

    def test_missing_required_field_reinfers_layout(self, caplog):
        """Test a timeline layout without entries falls back to a layout its content fits."""
        spec = SlideSpec.model_validate({"title": "History", "layout": "timeline", "paragraph": "Founded in 2012."})
        with caplog.at_level(logging.WARNING, logger="slidegen.pipeline"):
            result = conform_to_layout(spec, request_id="req-1")
        assert result.layout == "title-paragraph"
        assert result.paragraph == "Founded in 2012."
        assert "layout_conform_reinferred" in caplog.text
        assert "missing=timeline" in caplog.text

    def test_unused_fields_are_dropped(self):
        """Test a chart layout keeps its chart and shared fields and drops the rest."""
        spec = SlideSpec.model_validate(
            {
                "title": "Growth",
                "layout": "chart",
                "chart": {"type": "line", "categories": ["2023", "2024"], "series": [{"name": "ARR", "data": [1, 2]}]},
                "timeline": [{"date": "2024", "title": "Launch"}],
                "notes": "Point at the slope.",
                "imagePrompt": "Upward arrow",
            }
        )
        result = conform_to_layout(spec)
        assert result.timeline is None
        assert result.chart is not None
        assert result.notes == "Point at the slope."
        assert result.image_prompt == "Upward arrow"

    def test_two_column_needs_both_sides(self):
        """Test a comparison layout with one side is re-inferred."""
        spec = SlideSpec.model_validate(
            {"title": "Before and after", "layout": "before-after", "left": {"title": "Before"}, "bullets": ["Faster"]}
        )
        result = conform_to_layout(spec)
        assert result.layout == "title-bullets"
        assert result.left is None

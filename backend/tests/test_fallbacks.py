"""
Tests for network-free fallback content.
"""

from slidegen.schemas import SlideSpec
from slidegen.services.budgeting import conform_to_layout
from slidegen.services.fallbacks import (
    FALLBACK_NOTICE,
    FALLBACK_SOURCES,
    create_fallback_spec,
    create_fallback_title,
    degrade_layout,
    generate_fallback_image_prompt,
)


class TestFallbackTitle:
    def test_short_prompt_is_kept(self):
        """Test a short prompt becomes the title with a capital first letter."""
        assert create_fallback_title("hiring plan for q3") == "Hiring plan for q3"

    def test_long_prompt_uses_key_terms(self):
        """Test a long prompt is condensed to its key business terms."""
        prompt = "please prepare a detailed review of our revenue growth and the 34% increase across all regions"
        assert create_fallback_title(prompt) == "Revenue growth 34% Overview"

    def test_long_prompt_without_key_terms_is_cut(self):
        """Test a long prompt without key terms is cut to sixty characters."""
        prompt = "an introduction to the people who make our customer support team work every single day"
        title = create_fallback_title(prompt)
        assert len(title) == 60
        assert title.endswith("...")
        assert title.startswith("An introduction")


class TestFallbackSpec:
    def test_valid_and_marked(self):
        """Test the fallback slide validates and is clearly labelled."""
        spec = create_fallback_spec("Sales growth in EMEA")
        assert spec.layout == "title-bullets"
        assert spec.bullets[0] == "Revenue performance & key metrics"
        assert spec.notes.startswith(FALLBACK_NOTICE)
        assert 'ORIGINAL REQUEST: "Sales growth in EMEA"' in spec.notes
        assert spec.sources == FALLBACK_SOURCES

    def test_data_prompt_uses_paragraph_layout(self):
        """Test data-heavy prompts get a paragraph layout."""
        assert create_fallback_spec("Churn metrics deep dive").layout == "title-paragraph"

    def test_generic_content(self):
        """Test prompts matching no template get generic content."""
        spec = create_fallback_spec("Office move logistics")
        assert spec.bullets == ["Key points & objectives", "Current status updates", "Next steps & owners"]

    def test_keeps_previous_design(self, valid_spec_payload):
        """Test design hints from an earlier slide are preserved."""
        previous = SlideSpec.model_validate(valid_spec_payload)
        spec = create_fallback_spec("Office move logistics", previous)
        assert spec.design == previous.design


class TestImagePrompt:
    def test_theme_and_accent(self):
        """Test the prompt picks a theme from the slide and mentions the accent colour."""
        spec = SlideSpec.model_validate(
            {"title": "Meet the team", "layout": "title", "design": {"accentColor": "#ff6600"}}
        )
        prompt = generate_fallback_image_prompt(spec)
        assert "diverse team collaborating" in prompt
        assert "hint of #FF6600" in prompt
        assert prompt.endswith("no text in image")

    def test_without_spec(self):
        """Test a generic prompt is produced with no slide at all."""
        assert generate_fallback_image_prompt(None).startswith("Professional business slide background")


class TestDegradeLayout:
    def test_forces_fillable_layout(self):
        """Test the degraded slide keeps its content under a layout it can fill."""
        previous = SlideSpec.model_validate(
            {"title": "Process", "layout": "process-flow", "paragraph": "Three steps from intake to launch."}
        )
        spec = degrade_layout(previous, "timeout")
        assert spec.layout == "title-paragraph"
        assert spec.paragraph == previous.paragraph
        assert "(timeout)" in spec.notes

    def test_keeps_layout_its_content_fills(self):
        """Test a chart slide keeps its layout and chart through degrade and conformance."""
        previous = SlideSpec.model_validate(
            {
                "title": "ARR by year",
                "layout": "chart",
                "chart": {"type": "bar", "categories": ["2023", "2024"], "series": [{"name": "ARR", "data": [4, 7]}]},
                "bullets": ["Up 75% year over year"],
            }
        )
        spec = conform_to_layout(degrade_layout(previous, "network"))
        assert spec.layout == "chart"
        assert spec.chart == previous.chart
        assert spec.bullets == previous.bullets
        assert "a safe chart layout was applied" in spec.notes

    def test_two_column_with_both_sides_is_kept(self):
        """Test a comparison slide with both sides filled keeps its layout."""
        previous = SlideSpec.model_validate(
            {
                "title": "Build or buy",
                "layout": "two-column",
                "left": {"title": "Build", "bullets": ["Control"]},
                "right": {"title": "Buy", "bullets": ["Speed"]},
            }
        )
        spec = degrade_layout(previous)
        assert spec.layout == "two-column"
        assert spec.left == previous.left

"""
Unit tests for the YAML prompt loader.
"""
import pytest

from homeroom.core.ai.prompts import get_prompt, load_prompts, substitute


class TestSubstitute:
    """Test placeholder substitution"""

    def test_known_variables_replaced(self):
        assert substitute("Hello {name}, it is {day}", name="Sam", day="Monday") == "Hello Sam, it is Monday"

    def test_unknown_placeholders_left_alone(self):
        assert substitute("{known} and {unknown}", known="x") == "x and {unknown}"

    def test_json_braces_untouched(self):
        template = 'Return {"events": []} for {name}'

        assert substitute(template, name="Sam") == 'Return {"events": []} for Sam'

    def test_values_not_rescanned(self):
        assert substitute("{a}", a="{b}", b="nope") == "{b}"


class TestGetPrompt:
    """Test loading prompts from prompts.yaml"""

    def test_prompt_file_has_sections(self):
        prompts = load_prompts()

        assert "extraction" in prompts
        assert "vision" in prompts

    def test_user_prompt_filled(self):
        prompt = get_prompt(
            "extraction.user_prompt",
            current_date="2024-03-04",
            current_year=2024,
            next_year=2025,
            child_context="- CHILD_1: Year 7",
            email_count=1,
            emails="EMAIL BLOCK",
        )

        assert "2024-03-04" in prompt
        assert "- CHILD_1: Year 7" in prompt
        assert "EMAIL BLOCK" in prompt
        assert "{current_date}" not in prompt

    def test_vision_prompt_names_sentinels(self):
        prompt = get_prompt("vision.read_document")

        assert "[No text content]" in prompt
        assert "[Non-document image]" in prompt

    def test_missing_key_raises(self):
        with pytest.raises(KeyError):
            get_prompt("extraction.does_not_exist")

"""Tests for ToolValidator and argument alias normalization."""

from stormy.tools.validation import (
    ToolValidator,
    alternative_names,
    normalize_arguments,
)
from tests.mock_tools import EchoTool, PlanetTool, RecordingTool


class TestToolValidator:
    def test_valid_args_pass(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": "hello"})
        assert ok is True
        assert err is None

    def test_missing_required_arg_fails(self):
        ok, err = ToolValidator.validate(EchoTool(), {})
        assert ok is False
        assert err == "Missing required parameter: message"

    def test_wrong_type_fails(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": 12345})
        assert ok is False
        assert "string" in err

    def test_extra_keys_allowed(self):
        ok, _ = ToolValidator.validate(EchoTool(), {"message": "hi", "note": "extra"})
        assert ok is True

    def test_alias_satisfies_required(self):
        ok, err = ToolValidator.validate(PlanetTool(), {"planetName": "Moon"})
        assert ok is True, err

    def test_no_required_parameters(self):
        ok, _ = ToolValidator.validate(RecordingTool("r", []), {})
        assert ok is True


class TestAliases:
    def test_known_aliases(self):
        assert "profileId" in alternative_names("profile_id")
        assert "date" in alternative_names("start_date")

    def test_generated_spellings(self):
        assert alternative_names("planet_name") == ("planetname", "planetName")
        assert alternative_names("message") == ()

    def test_normalize_renames_to_declared_name(self):
        args = normalize_arguments(PlanetTool(), {"planetName": "Moon", "profileId": "p1", "x": 1})
        assert args == {"planet_name": "Moon", "profile_id": "p1", "x": 1}

    def test_declared_name_wins_over_alias(self):
        args = normalize_arguments(PlanetTool(), {"planet_name": "Sun", "planetName": "Moon"})
        assert args == {"planet_name": "Sun", "planetName": "Moon"}

    def test_input_not_mutated(self):
        original = {"planetName": "Moon"}
        normalize_arguments(PlanetTool(), original)
        assert original == {"planetName": "Moon"}

import pytest
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.validators import StringListEnvSettingsSource, parse_string_list


class TestParseStringList:
    @pytest.mark.parametrize(
        "raw",
        [
            '["http://localhost:5173", "https://mathhack.example"]',
            "http://localhost:5173,https://mathhack.example",
            " http://localhost:5173 ,  https://mathhack.example ",
            "http://localhost:5173,,https://mathhack.example,",
        ],
    )
    def test_accepted_forms(self, raw):
        assert parse_string_list(raw) == ["http://localhost:5173", "https://mathhack.example"]

    def test_list_returned_as_is(self):
        origins = ["http://localhost:5173"]
        assert parse_string_list(origins) is origins

    @pytest.mark.parametrize("raw", ["", "   ", ",", ",,,", "[]", []])
    def test_empty_rejected(self, raw):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(raw)

    def test_allow_empty(self):
        assert parse_string_list("[]", allow_empty=True) == []
        assert parse_string_list(",", allow_empty=True) == []

    def test_blank_string_rejected_even_when_empty_allowed(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("  ", allow_empty=True)

    def test_invalid_json(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list("[http://localhost:5173")

    @pytest.mark.parametrize("raw", ['["http://a.com", 5]', '[{"origin": "http://a.com"}]'])
    def test_non_string_items(self, raw):
        with pytest.raises(ValueError, match="array of strings"):
            parse_string_list(raw)


class _OriginSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TESTVAL_")

    cors_origins: list[str] = ["http://localhost:5173"]


class TestStringListEnvSettingsSource:
    def test_raw_field_left_undecoded(self, monkeypatch):
        monkeypatch.setenv("TESTVAL_CORS_ORIGINS", "http://a.com,http://b.com")
        source = StringListEnvSettingsSource(_OriginSettings)
        assert source()["cors_origins"] == "http://a.com,http://b.com"

    def test_json_value_passed_through(self, monkeypatch):
        monkeypatch.setenv("TESTVAL_CORS_ORIGINS", '["http://a.com"]')
        source = StringListEnvSettingsSource(_OriginSettings)
        assert source()["cors_origins"] == '["http://a.com"]'

import pytest

from glmrouter.config import (
    PROVIDERS,
    ModelInfo,
    extract_model_id,
    get_default_provider,
    get_provider,
    get_provider_by_model_id,
    get_tool_supporting_providers,
    resolve_api_key,
)
from glmrouter.errors import MissingApiKey


def test_default_provider_is_coding_endpoint():
    provider = get_default_provider()
    assert provider.id == "chatglm-coding"
    assert provider.base_url == "https://open.bigmodel.cn/api/coding/paas/v4"


def test_input_limit_leaves_room_for_output():
    provider = get_provider("chatglm-general")
    assert provider.max_input_tokens == 128000 - 8192


def test_unknown_provider():
    assert get_provider("nope") is None


@pytest.mark.parametrize(
    "model_id,expected",
    [
        ("chatglm-general:glm-4.6", "chatglm-general"),
        ("chatglm-coding:glm-4.6", "chatglm-coding"),
        ("glm-4.6", "chatglm-coding"),
        ("other:glm-4.6", "chatglm-coding"),
    ],
)
def test_provider_by_model_id(model_id, expected):
    assert get_provider_by_model_id(model_id).id == expected


def test_extract_model_id():
    provider = PROVIDERS["chatglm-general"]
    assert extract_model_id("chatglm-general:glm-4.6", provider) == "glm-4.6"
    assert extract_model_id("glm-4.6", provider) == "glm-4.6"
    assert extract_model_id("chatglm-coding:glm-4.6", provider) == "chatglm-coding:glm-4.6"


def test_tool_supporting_providers():
    assert {p.id for p in get_tool_supporting_providers()} == set(PROVIDERS)


def test_model_info_for_provider():
    info = ModelInfo.for_provider("glm-4.6", PROVIDERS["chatglm-coding"], "fast")
    assert info.id == "chatglm-coding:glm-4.6"
    assert info.name == "glm-4.6 (ChatGLM Coding)"
    assert info.tooltip == "ChatGLM Coding - fast"
    assert info.max_output_tokens == 8192


class TestResolveApiKey:
    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("CHATGLM_API_KEY", "env-key")
        assert resolve_api_key(get_default_provider(), " given ") == "given"

    def test_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("CHATGLM_API_KEY", "env-key")
        assert resolve_api_key(get_default_provider()) == "env-key"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("CHATGLM_API_KEY", raising=False)
        assert resolve_api_key(get_default_provider()) is None

    def test_missing_required_key_raises(self, monkeypatch):
        monkeypatch.delenv("CHATGLM_API_KEY", raising=False)
        with pytest.raises(MissingApiKey, match="CHATGLM_API_KEY"):
            resolve_api_key(get_default_provider(), required=True)

"""Provider registry.

Model ids may carry a provider prefix (``"chatglm-coding:glm-4.6"``);
unprefixed ids resolve to the default provider.
"""

import os

from pydantic import BaseModel

from glmrouter.errors import MissingApiKey

DEFAULT_MAX_OUTPUT_TOKENS = 8192
DEFAULT_CONTEXT_LENGTH = 128000


class ProviderConfig(BaseModel):
    id: str
    name: str
    base_url: str
    api_key_env: str
    family: str
    supports_tools: bool = True
    default_max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    default_context_length: int = DEFAULT_CONTEXT_LENGTH
    is_default: bool = False

    @property
    def max_input_tokens(self) -> int:
        return max(1, self.default_context_length - self.default_max_tokens)


class ModelInfo(BaseModel):
    """A model offered by a provider, with its token limits."""

    id: str
    name: str
    family: str
    max_input_tokens: int
    max_output_tokens: int
    tooltip: str = ""

    @classmethod
    def for_provider(
        cls, model_id: str, provider: ProviderConfig, tooltip_suffix: str = ""
    ) -> "ModelInfo":
        tooltip = provider.name
        if tooltip_suffix:
            tooltip = f"{tooltip} - {tooltip_suffix}"
        return cls(
            id=f"{provider.id}:{model_id}",
            name=f"{model_id} ({provider.name})",
            family=provider.family,
            max_input_tokens=provider.max_input_tokens,
            max_output_tokens=provider.default_max_tokens,
            tooltip=tooltip,
        )


PROVIDERS: dict[str, ProviderConfig] = {
    "chatglm-coding": ProviderConfig(
        id="chatglm-coding",
        name="ChatGLM Coding",
        base_url="https://open.bigmodel.cn/api/coding/paas/v4",
        api_key_env="CHATGLM_API_KEY",
        family="chatglm",
        is_default=True,
    ),
    "chatglm-general": ProviderConfig(
        id="chatglm-general",
        name="ChatGLM General",
        base_url="https://open.bigmodel.cn/api/paas/v4",
        api_key_env="CHATGLM_API_KEY",
        family="chatglm",
    ),
}


def get_provider(provider_id: str) -> ProviderConfig | None:
    return PROVIDERS.get(provider_id)


def get_default_provider() -> ProviderConfig:
    return next(p for p in PROVIDERS.values() if p.is_default)


def get_provider_by_model_id(model_id: str) -> ProviderConfig:
    prefix = model_id.split(":", 1)[0]
    return PROVIDERS.get(prefix) or get_default_provider()


def get_tool_supporting_providers() -> list[ProviderConfig]:
    return [p for p in PROVIDERS.values() if p.supports_tools]


def extract_model_id(model_id: str, provider: ProviderConfig) -> str:
    """Strip the provider prefix from *model_id*, if it has one."""
    prefix, sep, rest = model_id.partition(":")
    if sep and prefix == provider.id:
        return rest
    return model_id


def resolve_api_key(
    provider: ProviderConfig, api_key: str | None = None, required: bool = False
) -> str | None:
    """Return *api_key*, falling back to the provider's environment variable."""
    if not api_key:
        api_key = os.getenv(provider.api_key_env)
    if api_key:
        api_key = api_key.strip()
    if not api_key and required:
        raise MissingApiKey(provider.name, provider.api_key_env)
    return api_key or None

"""In-memory usage accounting per provider and model.

Token counts are the same coarse estimates the decoder produces; callers
that need persistence can serialise :meth:`UsageTracker.summary`.
"""

import time

from pydantic import BaseModel, Field


class ModelUsage(BaseModel):
    model_id: str
    request_count: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    last_used: float = 0.0


class ProviderUsage(BaseModel):
    models: dict[str, ModelUsage] = Field(default_factory=dict)
    total_requests: int = 0
    total_tokens: int = 0


class UsageTracker:
    def __init__(self):
        self._providers: dict[str, ProviderUsage] = {}

    def record_request(
        self,
        provider_id: str,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
    ) -> ModelUsage:
        provider = self._providers.setdefault(provider_id, ProviderUsage())
        model = provider.models.setdefault(model_id, ModelUsage(model_id=model_id))
        model.request_count += 1
        model.total_input_tokens += input_tokens
        model.total_output_tokens += output_tokens
        model.last_used = time.time()

        provider.total_requests += 1
        provider.total_tokens += input_tokens + output_tokens
        return model

    def get(self, provider_id: str, model_id: str) -> ModelUsage | None:
        provider = self._providers.get(provider_id)
        if provider is None:
            return None
        return provider.models.get(model_id)

    def summary(self) -> dict[str, ProviderUsage]:
        return {k: v.model_copy(deep=True) for k, v in self._providers.items()}

    def reset(self) -> None:
        self._providers.clear()

"""Self-hosted model servers: Ollama, vLLM, LM Studio and Player2."""

from __future__ import annotations

from dataclasses import replace
from typing import List

from polyprovider.core.providers import transport
from polyprovider.core.providers.base import (
    ModelInfo,
    ProviderCategory,
    ProviderConfig,
    ProviderDescriptor,
    VoiceInfo,
    VoiceLanguage,
)
from polyprovider.core.providers.openai_compat import (
    TEXT_GENERATION,
    TEXT_TO_SPEECH,
    guarded,
    remote_factory,
    remote_model_lister,
    static_model_lister,
)
from polyprovider.core.providers.validators import (
    join_url,
    reachability_validator,
)
from polyprovider.utils.log import get_logger

logger = get_logger()

OLLAMA_BASE_URL = "http://localhost:11434/v1/"
LM_STUDIO_BASE_URL = "http://localhost:1234/v1/"
VLLM_BASE_URL = "http://localhost:8000/v1/"
PLAYER2_BASE_URL = "http://localhost:4315/v1/"
PLAYER2_GAME_KEY = "airi"

OLLAMA_HINT = (
    "If you are using Ollama locally, this is likely a cross-origin (CORS) restriction; "
    "set OLLAMA_ORIGINS=* (or list the allowed origins) in the environment before "
    "launching the Ollama server."
)
LM_STUDIO_HINT = (
    "Make sure LM Studio is running and the local server is started from its "
    "'Local Server' tab."
)
PLAYER2_HINT = "If you do not have Player 2 running, please start it and try again."

VLLM_MODELS = (
    ("llama-2-7b", "Llama 2 (7B)", "Meta's Llama 2 7B parameter model", 4096),
    ("llama-2-13b", "Llama 2 (13B)", "Meta's Llama 2 13B parameter model", 4096),
    ("llama-2-70b", "Llama 2 (70B)", "Meta's Llama 2 70B parameter model", 4096),
    ("mistral-7b", "Mistral (7B)", "Mistral AI's 7B parameter model", 8192),
    ("mixtral-8x7b", "Mixtral (8x7B)", "Mistral AI's Mixtral 8x7B MoE model", 32768),
    ("custom", "Custom Model", "Specify a custom model name", 0),
)

PLAYER2_LANGUAGES = {
    "american_english": ("en", "English"),
    "british_english": ("en", "English"),
    "japanese": ("ja", "Japanese"),
    "mandarin_chinese": ("zh", "Chinese"),
    "spanish": ("es", "Spanish"),
    "french": ("fr", "French"),
    "hindi": ("hi", "Hindi"),
    "italian": ("it", "Italian"),
    "brazilian_portuguese": ("pt", "Portuguese"),
}


def _ollama(provider_id: str, category: ProviderCategory, tasks: frozenset) -> ProviderDescriptor:
    return ProviderDescriptor(
        id=provider_id,
        category=category,
        tasks=tasks,
        name="Ollama",
        name_key="settings.pages.providers.provider.ollama.title",
        description="ollama.com",
        description_key="settings.pages.providers.provider.ollama.description",
        icon="i-lobe-icons:ollama",
        default_options=lambda: {"baseUrl": OLLAMA_BASE_URL},
        create_provider=remote_factory(provider_id),
        list_models=remote_model_lister(provider_id),
        network_hint=OLLAMA_HINT,
        validate_provider_config=reachability_validator(
            "Ollama", default_base_url=OLLAMA_BASE_URL, hint=OLLAMA_HINT
        ),
    )


def _lm_studio() -> ProviderDescriptor:
    provider_id = "lm-studio"
    inner = remote_model_lister(provider_id)

    async def _list(config: ProviderConfig) -> List[ModelInfo]:
        # An unreachable LM Studio is common; report an empty catalog instead.
        try:
            return await inner(config)
        except Exception as exc:
            logger.warning(
                "[local_servers] Error fetching LM Studio models: %s",
                exc,
                extra={"provider": provider_id},
            )
            return []

    return ProviderDescriptor(
        id=provider_id,
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="LM Studio",
        name_key="settings.pages.providers.provider.lm-studio.title",
        description="lmstudio.ai",
        description_key="settings.pages.providers.provider.lm-studio.description",
        icon="i-lobe-icons:lmstudio",
        default_options=lambda: {"baseUrl": LM_STUDIO_BASE_URL},
        create_provider=remote_factory(provider_id),
        list_models=_list,
        network_hint=LM_STUDIO_HINT,
        validate_provider_config=reachability_validator(
            "LM Studio", default_base_url=LM_STUDIO_BASE_URL, hint=LM_STUDIO_HINT
        ),
    )


def _vllm() -> ProviderDescriptor:
    return ProviderDescriptor(
        id="vllm",
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="vLLM",
        name_key="settings.pages.providers.provider.vllm.title",
        description="vllm.ai",
        description_key="settings.pages.providers.provider.vllm.description",
        icon="i-lobe-icons:vllm",
        create_provider=remote_factory("vllm"),
        list_models=static_model_lister("vllm", VLLM_MODELS),
        validate_provider_config=reachability_validator("vLLM", default_base_url=VLLM_BASE_URL),
    )


def _player2() -> ProviderDescriptor:
    return ProviderDescriptor(
        id="player2",
        category=ProviderCategory.CHAT,
        tasks=TEXT_GENERATION,
        name="Player2",
        name_key="settings.pages.providers.provider.player2.title",
        description="player2.game",
        description_key="settings.pages.providers.provider.player2.description",
        icon="i-lobe-icons:player2",
        default_options=lambda: {"baseUrl": PLAYER2_BASE_URL},
        create_provider=remote_factory(
            "player2", headers={"player2-game-key": PLAYER2_GAME_KEY}
        ),
        list_models=static_model_lister("player2", (("player2-model", "Player2 Model", "", 0),)),
        network_hint=PLAYER2_HINT,
        validate_provider_config=reachability_validator(
            "Player 2",
            path="health",
            default_base_url=PLAYER2_BASE_URL,
            hint=PLAYER2_HINT,
            headers={"player2-game-key": PLAYER2_GAME_KEY},
        ),
    )


def _player2_speech() -> ProviderDescriptor:
    provider_id = "player2-speech"

    async def _list(config: ProviderConfig) -> List[VoiceInfo]:
        base_url = config.get("baseUrl") or PLAYER2_BASE_URL

        async def _request() -> List[VoiceInfo]:
            payload = await transport.fetch_json(
                join_url(base_url, "tts/voices"),
                headers={"player2-game-key": PLAYER2_GAME_KEY},
            )
            voices = []
            for entry in payload.get("voices", []):
                code, title = PLAYER2_LANGUAGES.get(entry.get("language"), ("en", "English"))
                voices.append(
                    VoiceInfo(
                        id=entry["id"],
                        name=entry.get("name") or entry["id"],
                        provider=provider_id,
                        gender=entry.get("gender"),
                        languages=(VoiceLanguage(code=code, title=title),),
                    )
                )
            return voices

        return await guarded(provider_id, _request)

    base = _player2()
    return replace(
        base,
        id=provider_id,
        category=ProviderCategory.SPEECH,
        tasks=TEXT_TO_SPEECH,
        name="Player2 Speech",
        name_key="settings.pages.providers.provider.player2-speech.title",
        create_provider=remote_factory(
            provider_id, headers={"player2-game-key": PLAYER2_GAME_KEY}
        ),
        list_models=None,
        list_voices=_list,
    )


def build_local_servers() -> List[ProviderDescriptor]:
    return [
        _ollama("ollama", ProviderCategory.CHAT, TEXT_GENERATION),
        _ollama("ollama-embedding", ProviderCategory.EMBED, frozenset({"text-feature-extraction"})),
        _vllm(),
        _lm_studio(),
        _player2(),
        _player2_speech(),
    ]

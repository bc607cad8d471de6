"""Speech preferences: active provider/voice, voice caching, SSML."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from xml.etree import ElementTree

from pydantic import BaseModel

from polyprovider.core.catalog import ProviderCatalog
from polyprovider.core.config import ProviderConfigStore
from polyprovider.core.invocation import InvocationFacade
from polyprovider.core.providers.base import ModelInfo, VoiceInfo
from polyprovider.utils.log import get_logger

logger = get_logger()

SSML_PROVIDERS = frozenset(
    {
        "elevenlabs",
        "microsoft-speech",
        "azure-speech",
        "google",
        "alibaba-cloud-model-studio",
        "volcengine",
    }
)
SSML_NAMESPACE = "http://www.w3.org/2001/10/synthesis"


def supports_ssml(provider_id: str) -> bool:
    return provider_id in SSML_PROVIDERS


def _signed_percent(value: float) -> str:
    return f"+{value}%" if value > 0 else f"{value}%"


def generate_ssml(text: str, voice: VoiceInfo, settings: Optional[Dict[str, Any]] = None) -> str:
    """Wrap ``text`` in a ``<speak>`` document for ``voice``.

    ``settings`` may carry ``pitch`` and ``volume`` (percent offsets) and
    ``speed``. A ``<prosody>`` element is emitted only when at least one of
    them is set.
    """
    settings = settings or {}
    language = voice.languages[0].code if voice.languages else "en-US"
    speak = ElementTree.Element(
        "speak", {"version": "1.0", "xmlns": SSML_NAMESPACE, "xml:lang": language}
    )
    voice_el = ElementTree.SubElement(
        speak, "voice", {"name": voice.id, "gender": voice.gender or "neutral"}
    )

    prosody: Dict[str, str] = {}
    if settings.get("pitch") is not None:
        prosody["pitch"] = _signed_percent(settings["pitch"])
    if settings.get("speed") is not None:
        speed = settings["speed"]
        prosody["rate"] = "1" if speed == 1.0 else f"{speed}"
    if settings.get("volume") is not None:
        prosody["volume"] = _signed_percent(settings["volume"])

    if prosody:
        ElementTree.SubElement(voice_el, "prosody", prosody).text = text
    else:
        voice_el.text = text
    return ElementTree.tostring(speak, encoding="unicode")


def filter_models(models: Iterable[ModelInfo], query: str) -> List[ModelInfo]:
    """Case-insensitive search across model name, id and description."""
    needle = query.strip().lower()
    if not needle:
        return list(models)
    return [
        model
        for model in models
        if needle in model.name.lower()
        or needle in model.id.lower()
        or (model.description and needle in model.description.lower())
    ]


class SpeechPreferences(BaseModel):
    provider: str = ""
    model: str = "eleven_multilingual_v2"
    voice_id: str = ""
    pitch: float = 0
    rate: float = 1.0
    ssml_enabled: bool = False
    language: str = "en-US"


class SpeechSettings:
    """Active speech selection plus the per-provider voice cache."""

    def __init__(
        self,
        catalog: ProviderCatalog,
        store: ProviderConfigStore,
        facade: InvocationFacade,
        preferences: Optional[SpeechPreferences] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._facade = facade
        self.preferences = preferences or SpeechPreferences()
        self.voices: Dict[str, List[VoiceInfo]] = {}
        self.is_loading_voices = False
        self.speech_provider_error: Optional[str] = None

    @property
    def configured(self) -> bool:
        prefs = self.preferences
        return bool(prefs.provider and prefs.model and prefs.voice_id)

    @property
    def supports_ssml(self) -> bool:
        return supports_ssml(self.preferences.provider)

    @property
    def active_voice(self) -> Optional[VoiceInfo]:
        for voice in self.voices.get(self.preferences.provider, []):
            if voice.id == self.preferences.voice_id:
                return voice
        return None

    def voices_for_provider(self, provider_id: str) -> List[VoiceInfo]:
        return list(self.voices.get(provider_id, []))

    async def load_voices_for_provider(self, provider_id: str) -> List[VoiceInfo]:
        """Fetch and cache voices; failures are recorded, not raised."""
        if not provider_id:
            return []
        descriptor = self._catalog.find(provider_id)
        if descriptor is None:
            logger.warning("[speech] Provider %s not found", provider_id)
            return []
        if descriptor.list_voices is None:
            self.voices[provider_id] = []
            return []

        self.is_loading_voices = True
        self.speech_provider_error = None
        try:
            voices = await descriptor.list_voices(self._store.snapshot(provider_id))
        except Exception as exc:
            message = str(exc) or "Unknown error"
            if "connection refused" not in message.lower():
                logger.warning(
                    "[speech] Error fetching voices for %s: %s",
                    provider_id,
                    message,
                    extra={"provider": provider_id},
                )
            self.speech_provider_error = message
            self.voices[provider_id] = []
            return []
        finally:
            self.is_loading_voices = False
        self.voices[provider_id] = list(voices)
        return list(voices)

    def voice_settings(self) -> Dict[str, float]:
        return {"pitch": self.preferences.pitch, "speed": self.preferences.rate}

    async def speak(self, text: str, config_overrides: Optional[Dict[str, Any]] = None) -> bytes:
        """Synthesize ``text`` with the active provider, model and voice."""
        prefs = self.preferences
        voice = self.active_voice
        if prefs.ssml_enabled and self.supports_ssml and voice is not None:
            text = generate_ssml(text, voice, self.voice_settings())
        overrides: Dict[str, Any] = dict(config_overrides or {})
        caller_settings = overrides.get("voiceSettings")
        # Caller settings win per key; a non-dict value replaces the group.
        if caller_settings is None or isinstance(caller_settings, dict):
            overrides["voiceSettings"] = {**self.voice_settings(), **(caller_settings or {})}
        return await self._facade.generate(
            prefs.provider, prefs.model, text, prefs.voice_id, overrides
        )

"""Shared abstractions for provider descriptors and their capabilities."""

from __future__ import annotations

import copy
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field

ProviderConfig = Dict[str, Any]


class ProviderCategory(str, Enum):
    """What kind of work a provider performs."""

    CHAT = "chat"
    EMBED = "embed"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"


class ValidationResult(BaseModel):
    """Outcome of checking a provider configuration."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    reason: str = ""
    errors: Tuple[str, ...] = ()

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def from_errors(cls, errors: Iterable[str]) -> "ValidationResult":
        collected = tuple(errors)
        return cls(valid=not collected, reason=", ".join(collected), errors=collected)

    @classmethod
    def failed(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, errors=(reason,))


class ModelInfo(BaseModel):
    """A model offered by a provider. Only ``installed`` changes after creation."""

    id: str
    name: str
    provider: str
    description: str = ""
    size: Optional[int] = None
    quality: Optional[str] = None
    speed: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    context_length: Optional[int] = None
    deprecated: bool = False
    installed: bool = False


class VoiceLanguage(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    title: str


class VoiceInfo(BaseModel):
    """A synthesis voice."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: str
    gender: Optional[str] = None
    languages: Tuple[VoiceLanguage, ...] = ()
    preview_url: Optional[str] = None
    model_id: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False


class ProgressInfo(BaseModel):
    """Install progress snapshot for a single model. ``progress`` is 0..1."""

    model_config = ConfigDict(frozen=True)

    loaded: int = 0
    total: int = 0
    progress: float = 0.0
    done: bool = False


ProgressCallback = Callable[[ProgressInfo], None]
SpeechFn = Callable[[str, str, str, ProviderConfig], Awaitable[bytes]]
TranscribeFn = Callable[[str, bytes, ProviderConfig], Awaitable[str]]


@dataclass
class ProviderInstance:
    """Live, capability-bound provider built from a config.

    Remote providers are described by connection details and are driven
    through the generic transport. In-process backends set ``generate_speech``
    or ``transcribe`` and are called directly.
    """

    provider_id: str
    base_url: str = ""
    api_key: str = ""
    api: str = "openai"
    headers: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    generate_speech: Optional[SpeechFn] = None
    transcribe: Optional[TranscribeFn] = None


@dataclass(frozen=True)
class Capabilities:
    """Which optional capability functions a descriptor carries."""

    can_list_models: bool = False
    can_list_voices: bool = False
    can_load_model: bool = False
    progress_event: Optional[str] = None


def _no_options() -> ProviderConfig:
    return {}


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


ValidatorFn = Callable[[ProviderConfig], Union[ValidationResult, Awaitable[ValidationResult]]]


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one provider and the functions that drive it."""

    id: str
    category: ProviderCategory
    name: str
    create_provider: Callable[[ProviderConfig], Awaitable[ProviderInstance]]
    validate_provider_config: ValidatorFn
    tasks: FrozenSet[str] = frozenset()
    description: str = ""
    icon: str = ""
    name_key: str = ""
    description_key: str = ""
    default_options: Callable[[], ProviderConfig] = _no_options
    is_available_by: Optional[Callable[[], Awaitable[bool]]] = None
    list_models: Optional[Callable[[ProviderConfig], Awaitable[List[ModelInfo]]]] = None
    list_voices: Optional[Callable[[ProviderConfig], Awaitable[List[VoiceInfo]]]] = None
    load_model: Optional[
        Callable[[ProviderConfig, Optional[ProgressCallback]], Awaitable[None]]
    ] = None
    progress_event: Optional[str] = None
    network_hint: Optional[str] = None

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(
            can_list_models=self.list_models is not None,
            can_list_voices=self.list_voices is not None,
            can_load_model=self.load_model is not None,
            progress_event=self.progress_event,
        )

    def initial_config(self) -> ProviderConfig:
        """Fresh copy of the default options, safe to mutate."""
        return copy.deepcopy(self.default_options())

    async def validate(self, config: ProviderConfig) -> ValidationResult:
        """Run the validator on a copy so it can never mutate stored config."""
        return await maybe_await(self.validate_provider_config(copy.deepcopy(config)))

"""Built-in provider descriptors."""

from __future__ import annotations

from typing import List

from polyprovider.core.channel import CommandChannel
from polyprovider.core.providers.anthropic import build_anthropic
from polyprovider.core.providers.app_local import (
    build_local_speech,
    build_local_transcription,
)
from polyprovider.core.providers.base import ProviderDescriptor
from polyprovider.core.providers.browser_local import build_browser_local
from polyprovider.core.providers.local_servers import build_local_servers
from polyprovider.core.providers.openai_compat import build_openai_family
from polyprovider.core.providers.speech_services import build_speech_services
from polyprovider.utils.platform import RuntimeInfo


def builtin_descriptors(runtime: RuntimeInfo, channel: CommandChannel) -> List[ProviderDescriptor]:
    """Every descriptor shipped with the package, in display order."""
    return [
        *build_openai_family(),
        build_anthropic(),
        build_local_speech(channel),
        build_local_transcription(channel),
        *build_browser_local(runtime),
        *build_local_servers(),
        *build_speech_services(),
    ]


__all__ = ["ProviderDescriptor", "builtin_descriptors"]

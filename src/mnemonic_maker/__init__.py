"""
Mnemonic Maker

Generate an illustrative image, a spoken clip and optionally a spoken mnemonic
for each phrase/translation pair, then export an Anki-importable deck.

This package provides:
- A batched, concurrent, retrying media build pipeline
- A realtime streaming client for one-shot mnemonics
- Deck export and Anki profile helpers
- A command line interface
"""

__version__ = "1.0.0"

from .structures import (
    AssetKind, AssetOutcome, BuildConfiguration, BuildProgress, BuildResult,
    Card, CardResult, Configuration, MediaPolicy, RealtimePhase, RealtimeResult,
    make_run_id, media_filename
)

from .errors import (
    MnemonicMakerError, NetworkError, RemoteServiceError, MalformedResponseError,
    Cancelled, RealtimeServerError, RealtimeTimeoutError, NoAudioReceived, ExportError
)

from .cancellation import CancellationToken

from .retry import retry

from .generation_client import (
    create_generation_client, GenerationService, OpenAIGenerationClient, MockGenerationClient
)

from .realtime import create_realtime_client, RealtimeClient, RealtimeSession, pcm16_to_wav

from .processor import create_pipeline, build_deck, BatchBuildPipeline

from .parser import parse_tsv, read_cards_from_file

from .exporter import write_export, available_profiles, collection_media, copy_media

__all__ = [
    # Structures
    'AssetKind', 'AssetOutcome', 'BuildConfiguration', 'BuildProgress', 'BuildResult',
    'Card', 'CardResult', 'Configuration', 'MediaPolicy', 'RealtimePhase', 'RealtimeResult',
    'make_run_id', 'media_filename',

    # Errors
    'MnemonicMakerError', 'NetworkError', 'RemoteServiceError', 'MalformedResponseError',
    'Cancelled', 'RealtimeServerError', 'RealtimeTimeoutError', 'NoAudioReceived', 'ExportError',

    # Core
    'CancellationToken', 'retry',
    'create_pipeline', 'build_deck', 'BatchBuildPipeline',
    'create_realtime_client', 'RealtimeClient', 'RealtimeSession', 'pcm16_to_wav',

    # Services
    'create_generation_client', 'GenerationService', 'OpenAIGenerationClient',
    'MockGenerationClient',

    # Input / output
    'parse_tsv', 'read_cards_from_file',
    'write_export', 'available_profiles', 'collection_media', 'copy_media',
]

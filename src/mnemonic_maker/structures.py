"""
Data structures and entities for Mnemonic Maker.
This module defines all the core data structures used throughout the application.
"""

import uuid
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class AssetKind(Enum):
    """Kinds of media generated for a card."""
    IMAGE = "img"
    AUDIO = "audio"
    MNEMONIC = "mnemonic"

    @property
    def label(self) -> str:
        return self.name.capitalize()


class MediaPolicy(Enum):
    """What to do when a media file for this run already exists."""
    SKIP_EXISTING = "skip"
    OVERWRITE = "overwrite"


class RealtimePhase(Enum):
    """States of a realtime streaming session."""
    CONNECTING = "connecting"
    AWAITING_SESSION_READY = "awaiting_session_ready"
    SESSION_CONFIGURED = "session_configured"
    AWAITING_ITEM_ACK = "awaiting_item_ack"
    AWAITING_RESPONSE = "awaiting_response"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (RealtimePhase.COMPLETED, RealtimePhase.FAILED, RealtimePhase.TIMED_OUT)


IMAGE_EXTENSIONS = {"jpeg": "jpg", "png": "png", "webp": "webp"}
AUDIO_FORMATS = ("mp3", "wav", "opus", "aac", "flac")
IMAGE_SIZES = ("1024x1024", "1536x1024", "1024x1536", "auto")
IMAGE_QUALITIES = ("low", "medium", "high", "auto")

DEFAULT_GLOBAL_IMAGE_STYLE = (
    "Playful, clean illustration, bright colors, single clear focal point, "
    "slight exaggeration for memorability, no text or captions, no watermarks."
)

DEFAULT_IMAGE_PROMPT_TEMPLATE = """{global_style}
Phrase: "{phrase}" (used to mean: "{translation}").
Create a memorable illustrative scene that makes this phrase easy to recall.
Keep a single clear focal point; no text or captions; no watermarks."""

DEFAULT_AUDIO_INSTRUCTIONS = """Accent/Affect: Warm, refined, and gently instructive, reminiscent of a friendly language instructor.
Tone: Calm, encouraging, and articulate.
Pacing: Slow and deliberate.
Pronunciation: Clearly articulate terminology with gentle emphasis."""

DEFAULT_MNEMONIC_INSTRUCTIONS = (
    "You are a mnemonic creating agent. Your only role is to respond by creating a "
    "mnemonic that the user can use to aid in their recall of the target word. "
    "The target word has been provided to you."
)


@dataclass(frozen=True)
class Card:
    """One phrase/translation pair to be turned into a flashcard."""
    index: int
    phrase: str
    translation: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        if self.index < 1:
            raise ValueError(f"Card index must be positive, got {self.index}")


@dataclass(frozen=True)
class BuildConfiguration:
    """Immutable settings snapshot taken when a build starts."""
    image_prompt_template: str = DEFAULT_IMAGE_PROMPT_TEMPLATE
    global_image_style: str = DEFAULT_GLOBAL_IMAGE_STYLE
    image_size: str = "1024x1024"
    image_quality: str = "medium"
    image_format: str = "jpeg"
    image_model: str = "gpt-image-1"
    voice: str = "alloy"
    audio_format: str = "mp3"
    audio_instructions: Optional[str] = DEFAULT_AUDIO_INSTRUCTIONS
    tts_model: str = "gpt-4o-mini-tts"
    concurrency_group_size: int = 10
    retry_count: int = 3
    retry_delay_seconds: float = 2.0
    include_images: bool = True
    include_audio: bool = True
    include_mnemonics: bool = False
    mnemonic_instructions: str = DEFAULT_MNEMONIC_INSTRUCTIONS
    mnemonic_voice: str = "shimmer"
    media_policy: MediaPolicy = MediaPolicy.SKIP_EXISTING
    anki_media_path: Optional[Path] = None

    def __post_init__(self):
        if self.concurrency_group_size < 1:
            raise ValueError("concurrency_group_size must be at least 1")
        if self.retry_count < 1:
            raise ValueError("retry_count must be at least 1")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must not be negative")
        if self.image_format not in IMAGE_EXTENSIONS:
            raise ValueError(f"Unsupported image format: {self.image_format}")
        if isinstance(self.media_policy, str):
            object.__setattr__(self, "media_policy", MediaPolicy(self.media_policy))
        if isinstance(self.anki_media_path, str):
            object.__setattr__(self, "anki_media_path", Path(self.anki_media_path))

    @property
    def asset_kinds(self) -> List[AssetKind]:
        """Asset kinds enabled for this build, in generation order."""
        kinds = []
        if self.include_images:
            kinds.append(AssetKind.IMAGE)
        if self.include_audio:
            kinds.append(AssetKind.AUDIO)
        if self.include_mnemonics:
            kinds.append(AssetKind.MNEMONIC)
        return kinds

    def extension_for(self, kind: AssetKind) -> str:
        if kind is AssetKind.IMAGE:
            return IMAGE_EXTENSIONS[self.image_format]
        if kind is AssetKind.AUDIO:
            return self.audio_format
        return "wav"

    def render_image_prompt(self, card: Card) -> str:
        """Fill the image prompt template with the card's fields."""
        # Plain replacement: user templates may contain other braces.
        return (
            self.image_prompt_template
            .replace("{global_style}", self.global_image_style)
            .replace("{phrase}", card.phrase)
            .replace("{translation}", card.translation)
        ).strip()


def make_run_id(label: str = "run", timestamp: Optional[str] = None) -> str:
    """Build a run identifier from a label and a timestamp.

    Without an explicit timestamp a short random suffix is appended, so two
    runs started within the same second still get distinct media names.
    """
    stamp = timestamp or f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"
    safe_label = "".join(c if c.isalnum() or c in "-" else "-" for c in label.strip()) or "run"
    return f"{safe_label}_{stamp}"


def media_filename(run_id: str, card_index: int, kind: AssetKind, extension: str) -> str:
    """Deterministic media filename: <runId>_<NNNN>_<kind>.<ext>."""
    return f"{run_id}_{card_index:04d}_{kind.value}.{extension}"


@dataclass(frozen=True)
class AssetOutcome:
    """Result of generating one asset for one card."""
    kind: AssetKind
    filename: Optional[str] = None
    error: Optional[BaseException] = None
    cancelled: bool = False
    reused: bool = False

    @classmethod
    def success(cls, kind: AssetKind, filename: str, reused: bool = False) -> "AssetOutcome":
        return cls(kind=kind, filename=filename, reused=reused)

    @classmethod
    def failure(cls, kind: AssetKind, error: BaseException) -> "AssetOutcome":
        return cls(kind=kind, error=error)

    @classmethod
    def skipped(cls, kind: AssetKind) -> "AssetOutcome":
        return cls(kind=kind, cancelled=True)

    @property
    def succeeded(self) -> bool:
        return self.filename is not None and self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class CardResult:
    """Per-card outcome handed from a worker to the aggregator."""
    card_id: uuid.UUID
    card_index: int
    outcomes: Dict[AssetKind, AssetOutcome] = field(default_factory=dict)

    @property
    def image_outcome(self) -> Optional[AssetOutcome]:
        return self.outcomes.get(AssetKind.IMAGE)

    @property
    def audio_outcome(self) -> Optional[AssetOutcome]:
        return self.outcomes.get(AssetKind.AUDIO)

    @property
    def mnemonic_outcome(self) -> Optional[AssetOutcome]:
        return self.outcomes.get(AssetKind.MNEMONIC)


@dataclass
class BuildProgress:
    """Running progress snapshot of a build."""
    total: int = 0
    completed: int = 0
    failed: int = 0
    status: str = ""

    @property
    def progress_percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.completed / self.total) * 100

    def snapshot(self) -> "BuildProgress":
        return BuildProgress(self.total, self.completed, self.failed, self.status)


@dataclass
class BuildResult:
    """Everything a finished (or cancelled) build produced."""
    run_id: str
    progress: BuildProgress
    image_names: Dict[uuid.UUID, str] = field(default_factory=dict)
    audio_names: Dict[uuid.UUID, str] = field(default_factory=dict)
    mnemonic_names: Dict[uuid.UUID, str] = field(default_factory=dict)
    deck_path: Optional[Path] = None
    export_error: Optional[BaseException] = None
    media_copy_error: Optional[BaseException] = None
    cancelled: bool = False
    log: List[str] = field(default_factory=list)

    @property
    def exported(self) -> bool:
        return self.deck_path is not None and self.export_error is None


@dataclass
class RealtimeSessionState:
    """Mutable state of one realtime session."""
    phase: RealtimePhase = RealtimePhase.CONNECTING
    audio: bytearray = field(default_factory=bytearray)
    text: str = ""
    terminal_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RealtimeResult:
    """Audio and transcript produced by a completed realtime session."""
    audio: bytes
    text: str = ""


@dataclass
class Configuration:
    """Application configuration."""
    openai_api_key: str = field(default="", repr=False)
    openai_base_url: Optional[str] = None
    export_dir: Path = Path("anki_output")
    image_size: str = "1024x1024"
    image_quality: str = "medium"
    tts_voice: str = "alloy"
    tts_model: str = "gpt-4o-mini-tts"
    audio_format: str = "mp3"
    group_size: int = 10
    retry_count: int = 3
    retry_delay_seconds: float = 2.0
    media_policy: MediaPolicy = MediaPolicy.SKIP_EXISTING
    realtime_model: str = "gpt-realtime"
    mnemonic_voice: str = "shimmer"
    image_prompt_template: str = DEFAULT_IMAGE_PROMPT_TEMPLATE
    global_image_style: str = DEFAULT_GLOBAL_IMAGE_STYLE
    audio_instructions: str = DEFAULT_AUDIO_INSTRUCTIONS
    mnemonic_instructions: str = DEFAULT_MNEMONIC_INSTRUCTIONS
    anki_profile: Optional[str] = None
    copy_to_anki: bool = False
    debug_mode: bool = False

    def __post_init__(self):
        if isinstance(self.export_dir, str):
            self.export_dir = Path(self.export_dir)
        if isinstance(self.media_policy, str):
            self.media_policy = MediaPolicy(self.media_policy)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.openai_api_key:
            errors.append("OpenAI API key is required")
        if self.image_size not in IMAGE_SIZES:
            errors.append(f"Unsupported image size: {self.image_size}")
        if self.image_quality not in IMAGE_QUALITIES:
            errors.append(f"Unsupported image quality: {self.image_quality}")
        if self.audio_format not in AUDIO_FORMATS:
            errors.append(f"Unsupported audio format: {self.audio_format}")
        if self.group_size < 1:
            errors.append("Group size must be at least 1")
        if self.retry_count < 1:
            errors.append("Retry count must be at least 1")
        if self.retry_delay_seconds < 0:
            errors.append("Retry delay must not be negative")
        if not self.image_prompt_template.strip():
            errors.append("Image prompt template must not be empty")
        if not self.mnemonic_instructions.strip():
            errors.append("Mnemonic instructions must not be empty")
        if self.copy_to_anki and not self.anki_profile:
            errors.append("An Anki profile is required to copy media into Anki")

        return errors

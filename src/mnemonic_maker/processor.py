"""
Batch build pipeline for Mnemonic Maker.
Fans cards out in bounded concurrent groups, generates each card's media with
retries, aggregates results in one place and hands them to the exporter.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .errors import Cancelled, ExportError
from .exporter import MEDIA_DIRNAME, atomic_write_bytes, copy_media, write_export
from .generation_client import GenerationService
from .realtime import RealtimeClient, pcm16_to_wav
from .retry import retry
from .structures import (
    AssetKind,
    AssetOutcome,
    BuildConfiguration,
    BuildProgress,
    BuildResult,
    Card,
    CardResult,
    MediaPolicy,
    make_run_id,
    media_filename,
)

logger = logging.getLogger(__name__)

STATUS_DONE = "Done"
STATUS_CANCELLED = "Cancelled"


class BatchBuildPipeline:
    """Drives media generation for a list of cards and exports the deck.

    Worker tasks never touch shared state: each card's outcomes are published
    as one ``CardResult`` on a queue and a single aggregator task applies them
    to the progress counters, the name maps and the build log.
    """

    def __init__(self, client: GenerationService, config: BuildConfiguration,
                 export_dir: Path, run_id: Optional[str] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 realtime_client: Optional[RealtimeClient] = None,
                 progress_callback: Optional[Callable[[BuildProgress], None]] = None,
                 log_callback: Optional[Callable[[str], None]] = None):
        if config.include_mnemonics and realtime_client is None:
            raise ValueError("A realtime client is required when mnemonics are enabled")

        self.client = client
        self.config = config
        self.export_dir = Path(export_dir)
        self.media_dir = self.export_dir / MEDIA_DIRNAME
        self.run_id = run_id or make_run_id()
        self.cancel_token = cancel_token or CancellationToken()
        self.realtime_client = realtime_client
        self.progress_callback = progress_callback
        self.log_callback = log_callback

    @property
    def _cancelled(self) -> bool:
        return self.cancel_token.is_cancelled

    def _groups(self, cards: List[Card]) -> List[List[Card]]:
        size = self.config.concurrency_group_size
        return [cards[i:i + size] for i in range(0, len(cards), size)]

    async def build(self, cards: List[Card]) -> BuildResult:
        """Generate media for ``cards``, export the deck and return the result."""
        kinds = self.config.asset_kinds
        progress = BuildProgress(total=len(cards) * len(kinds), status="Starting")
        result = BuildResult(run_id=self.run_id, progress=progress)

        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Each asset write will fail and be counted on its own
            logger.error("Could not create media directory %s: %s", self.media_dir, e)

        groups = self._groups(cards)
        self._log(result, f"Building {len(cards)} cards in {len(groups)} groups (run {self.run_id})")
        self._report(result)

        queue: asyncio.Queue = asyncio.Queue()
        aggregator = asyncio.create_task(self._aggregate(queue, result))
        try:
            for number, group in enumerate(groups, 1):
                if self._cancelled:
                    self._log(result, f"Cancelled before group {number}/{len(groups)}")
                    break
                progress.status = f"Group {number}/{len(groups)}"
                self._report(result)
                async with asyncio.TaskGroup() as tg:
                    for card in group:
                        tg.create_task(self._process_card(card, queue))
        finally:
            await queue.put(None)
            await aggregator

        result.cancelled = self._cancelled
        if not result.cancelled or progress.completed > 0:
            await self._export(cards, result)

        progress.status = STATUS_CANCELLED if result.cancelled else STATUS_DONE
        self._log(result, f"{progress.status}: {progress.completed}/{progress.total} processed, "
                          f"{progress.failed} failed")
        self._report(result)
        return result

    async def _process_card(self, card: Card, queue: asyncio.Queue):
        outcomes = await asyncio.gather(
            *(self._produce_asset(card, kind) for kind in self.config.asset_kinds)
        )
        await queue.put(CardResult(
            card_id=card.id,
            card_index=card.index,
            outcomes={outcome.kind: outcome for outcome in outcomes},
        ))

    async def _produce_asset(self, card: Card, kind: AssetKind) -> AssetOutcome:
        if self._cancelled:
            return AssetOutcome.skipped(kind)

        filename = media_filename(self.run_id, card.index, kind, self.config.extension_for(kind))
        path = self.media_dir / filename
        try:
            if self.config.media_policy is MediaPolicy.SKIP_EXISTING and path.exists():
                return AssetOutcome.success(kind, filename, reused=True)
            data = await retry(
                lambda: self._generate(card, kind),
                attempts=self.config.retry_count,
                delay=self.config.retry_delay_seconds,
                cancel_token=self.cancel_token,
                label=f"{kind.label} {card.index}",
            )
            await asyncio.to_thread(atomic_write_bytes, path, data)
        except Cancelled:
            return AssetOutcome.skipped(kind)
        except Exception as e:
            logger.warning("%s for card %d failed: %s", kind.label, card.index, e)
            return AssetOutcome.failure(kind, e)

        return AssetOutcome.success(kind, filename)

    async def _generate(self, card: Card, kind: AssetKind) -> bytes:
        config = self.config
        if kind is AssetKind.IMAGE:
            return await self.client.generate_image(
                config.render_image_prompt(card),
                size=config.image_size,
                quality=config.image_quality,
                output_format=config.image_format,
            )
        if kind is AssetKind.AUDIO:
            return await self.client.synthesize_speech(
                card.phrase,
                voice=config.voice,
                format=config.audio_format,
                model=config.tts_model,
                instructions=config.audio_instructions,
            )
        mnemonic = await self.realtime_client.generate_mnemonic(
            card.phrase,
            instructions=config.mnemonic_instructions,
            voice=config.mnemonic_voice,
            cancel_token=self.cancel_token,
        )
        return pcm16_to_wav(mnemonic.audio)

    async def _aggregate(self, queue: asyncio.Queue, result: BuildResult):
        while True:
            card_result = await queue.get()
            if card_result is None:
                return
            self._apply(card_result, result)

    def _apply(self, card_result: CardResult, result: BuildResult):
        progress = result.progress
        name_maps: Dict[AssetKind, Dict] = {
            AssetKind.IMAGE: result.image_names,
            AssetKind.AUDIO: result.audio_names,
            AssetKind.MNEMONIC: result.mnemonic_names,
        }

        for kind, outcome in card_result.outcomes.items():
            if outcome.cancelled:
                continue
            progress.completed += 1
            if outcome.failed:
                progress.failed += 1
                self._log(result, f"✗ {kind.label} {card_result.card_index} failed: {outcome.error}")
            else:
                name_maps[kind][card_result.card_id] = outcome.filename
                suffix = " (existing)" if outcome.reused else ""
                self._log(result, f"✓ {kind.label} {card_result.card_index}: {outcome.filename}{suffix}")

        self._report(result)

    async def _export(self, cards: List[Card], result: BuildResult):
        mnemonic_names = result.mnemonic_names if self.config.include_mnemonics else None
        try:
            result.deck_path = await asyncio.to_thread(
                write_export, cards, result.image_names, result.audio_names,
                self.export_dir, mnemonic_names,
            )
        except ExportError as e:
            result.export_error = e
            self._log(result, f"✗ Export failed: {e}")
            return
        self._log(result, f"Exported deck to {result.deck_path}")

        if self.config.anki_media_path is None:
            return
        try:
            copied = await asyncio.to_thread(copy_media, self.media_dir, self.config.anki_media_path)
        except ExportError as e:
            result.media_copy_error = e
            self._log(result, f"✗ Copy to Anki failed: {e}")
        else:
            self._log(result, f"✓ Copied {copied} media files to {self.config.anki_media_path}")

    def _log(self, result: BuildResult, line: str):
        logger.info(line)
        result.log.append(line)
        if self.log_callback:
            self.log_callback(line)

    def _report(self, result: BuildResult):
        if self.progress_callback:
            self.progress_callback(result.progress.snapshot())


def create_pipeline(client: GenerationService, config: BuildConfiguration,
                    export_dir: Path, **kwargs) -> BatchBuildPipeline:
    """Factory function to create the build pipeline."""
    return BatchBuildPipeline(client, config, export_dir, **kwargs)


async def build_deck(client: GenerationService, cards: List[Card],
                     config: BuildConfiguration, export_dir: Path,
                     **kwargs) -> BuildResult:
    """Run one build and return its result."""
    pipeline = create_pipeline(client, config, export_dir, **kwargs)
    return await pipeline.build(cards)

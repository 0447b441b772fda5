"""
Command line entry point for Mnemonic Maker.
Builds decks from TSV files, generates single mnemonics and lists Anki profiles.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .cancellation import CancellationToken
from .config import get_build_configuration, get_config, update_config, validate_config
from .errors import MnemonicMakerError
from .exporter import anki_profiles_dir, atomic_write_bytes, available_profiles, collection_media
from .generation_client import create_generation_client
from .parser import read_cards_from_file
from .processor import create_pipeline
from .realtime import create_realtime_client, pcm16_to_wav
from .structures import (
    BuildProgress,
    BuildResult,
    Card,
    MediaPolicy,
    make_run_id,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mnemonic-maker",
        description="Generate images, audio and mnemonics for phrase/translation pairs "
                    "and export an Anki deck.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build a deck from a TSV file")
    build.add_argument(
        "-i", "--input",
        type=Path,
        required=True,
        help="Path to a UTF-8 file of phrase<TAB>translation lines"
    )
    build.add_argument(
        "-o", "--output",
        type=Path,
        help="Export folder for deck.tsv and media/ (default: EXPORT_DIR)"
    )
    build.add_argument(
        "--run-label",
        default="run",
        help="Label used as the prefix of generated media filenames"
    )
    build.add_argument(
        "--run-id",
        help="Reuse an existing run id, e.g. to resume an interrupted build"
    )
    build.add_argument(
        "--group-size",
        type=int,
        help="Number of cards generated concurrently (default: GROUP_SIZE)"
    )
    build.add_argument(
        "--no-images",
        action="store_true",
        help="Skip image generation"
    )
    build.add_argument(
        "--no-audio",
        action="store_true",
        help="Skip audio generation"
    )
    build.add_argument(
        "--mnemonics",
        action="store_true",
        help="Also generate a spoken mnemonic per card"
    )
    build.add_argument(
        "--overwrite",
        action="store_true",
        help="Regenerate media files that already exist"
    )
    build.add_argument(
        "--prompt-template",
        type=Path,
        help="File holding the image prompt template (default: IMAGE_PROMPT_TEMPLATE)"
    )
    build.add_argument(
        "--anki-profile",
        help="Copy media into this Anki profile's collection.media after export"
    )
    build.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print every build log line"
    )

    mnemonic = subparsers.add_parser("mnemonic", help="Generate one spoken mnemonic")
    mnemonic.add_argument("word", help="Word or phrase to create a mnemonic for")
    mnemonic.add_argument(
        "-o", "--output",
        type=Path,
        help="Output WAV file (default: <word>_mnemonic.wav)"
    )
    mnemonic.add_argument(
        "--instructions",
        help="Instructions for the realtime model (default: MNEMONIC_INSTRUCTIONS)"
    )
    mnemonic.add_argument(
        "--voice",
        help="Realtime voice (default: MNEMONIC_VOICE)"
    )

    subparsers.add_parser("profiles", help="List Anki profiles")

    return parser.parse_args(argv)


def check_configuration() -> bool:
    """Print configuration errors; return whether the configuration is usable."""
    errors = validate_config()
    if errors:
        print("Configuration errors:")
        for error in errors:
            print(f"  - {error}")
        return False
    return True


def _install_cancel_handler(token: CancellationToken) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform; Ctrl+C falls back to KeyboardInterrupt
        return False
    return True


def _remove_cancel_handler():
    loop = asyncio.get_running_loop()
    try:
        loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        pass


async def build_with_progress(cards: List[Card], export_dir: Path, run_id: str,
                              verbose: bool = False, **overrides) -> BuildResult:
    """Run a build with a tqdm progress bar; Ctrl+C cancels it cooperatively."""
    config = get_config()
    build_config = get_build_configuration(**overrides)
    client = create_generation_client(config.openai_api_key, base_url=config.openai_base_url,
                                      image_model=build_config.image_model)
    realtime_client = None
    if build_config.include_mnemonics:
        realtime_client = create_realtime_client(config.openai_api_key, config.realtime_model)

    token = CancellationToken()
    handler_installed = _install_cancel_handler(token)
    total = len(cards) * len(build_config.asset_kinds)
    try:
        with tqdm(total=total, desc="Generating media", unit="asset") as bar:
            def on_progress(progress: BuildProgress):
                bar.n = progress.completed
                bar.set_postfix(failed=progress.failed, status=progress.status)

            def on_log(line: str):
                if verbose or line.startswith("✗"):
                    bar.write(line)

            pipeline = create_pipeline(
                client, build_config, export_dir,
                run_id=run_id,
                cancel_token=token,
                realtime_client=realtime_client,
                progress_callback=on_progress,
                log_callback=on_log,
            )
            return await pipeline.build(cards)
    finally:
        await client.aclose()
        if handler_installed:
            _remove_cancel_handler()


def print_summary(result: BuildResult):
    """Print build summary."""
    progress = result.progress
    print(f"\n--- Build Summary ({result.run_id}) ---")
    print(f"Status: {progress.status}")
    print(f"Assets processed: {progress.completed}/{progress.total}")
    print(f"Failed: {progress.failed}")
    print(f"Images: {len(result.image_names)}, audio: {len(result.audio_names)}, "
          f"mnemonics: {len(result.mnemonic_names)}")

    if result.deck_path and result.export_error is None:
        print(f"Deck: {result.deck_path}")
    if result.export_error:
        print(f"Export failed: {result.export_error}")
    if result.media_copy_error:
        print(f"Copy to Anki failed: {result.media_copy_error}")


def run_build(args) -> int:
    """Run the build command."""
    overrides = dict(group_size=args.group_size, anki_profile=args.anki_profile)
    if args.overwrite:
        overrides["media_policy"] = MediaPolicy.OVERWRITE
    if args.anki_profile:
        overrides["copy_to_anki"] = True
    if args.output:
        overrides["export_dir"] = args.output
    if args.prompt_template:
        try:
            overrides["image_prompt_template"] = args.prompt_template.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error reading prompt template: {e}")
            return EXIT_FAILURE
    update_config(**overrides)

    if not check_configuration():
        return EXIT_FAILURE

    try:
        cards = read_cards_from_file(args.input)
    except FileNotFoundError:
        print(f"Error: Input file not found: {args.input}")
        return EXIT_FAILURE
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading input file: {e}")
        return EXIT_FAILURE

    print(f"Read {len(cards)} cards from {args.input}")
    if not cards:
        print("No cards to process.")
        return EXIT_OK

    config = get_config()
    run_id = args.run_id or make_run_id(args.run_label)
    try:
        result = asyncio.run(build_with_progress(
            cards, config.export_dir, run_id,
            verbose=args.verbose,
            include_images=not args.no_images,
            include_audio=not args.no_audio,
            include_mnemonics=args.mnemonics,
        ))
    except ValueError as e:
        print(f"Error: {e}")
        return EXIT_FAILURE

    print_summary(result)
    if result.cancelled:
        return EXIT_CANCELLED
    if result.progress.failed or result.export_error or result.media_copy_error:
        return EXIT_FAILURE
    return EXIT_OK


async def generate_mnemonic_file(word: str, output: Path, instructions: str, voice: str) -> str:
    """Run one realtime session and save its audio as WAV; return the transcript."""
    config = get_config()
    client = create_realtime_client(config.openai_api_key, config.realtime_model)
    token = CancellationToken()
    handler_installed = _install_cancel_handler(token)
    try:
        result = await client.generate_mnemonic(
            word, instructions=instructions, voice=voice,
            cancel_token=token, log=logger.debug,
        )
    finally:
        if handler_installed:
            _remove_cancel_handler()

    await asyncio.to_thread(atomic_write_bytes, output, pcm16_to_wav(result.audio))
    return result.text


def run_mnemonic(args) -> int:
    """Run the mnemonic command."""
    if not check_configuration():
        return EXIT_FAILURE

    config = get_config()
    safe_word = "".join(c if c.isalnum() else "_" for c in args.word.strip()) or "mnemonic"
    output = args.output or Path(f"{safe_word}_mnemonic.wav")
    voice = args.voice or config.mnemonic_voice
    instructions = args.instructions or config.mnemonic_instructions

    print(f"Generating mnemonic for '{args.word}'...")
    try:
        transcript = asyncio.run(generate_mnemonic_file(args.word, output, instructions, voice))
    except MnemonicMakerError as e:
        print(f"Mnemonic failed: {e}")
        return EXIT_FAILURE
    except OSError as e:
        print(f"Could not save mnemonic: {e}")
        return EXIT_FAILURE

    if transcript:
        print(f"Transcript: {transcript}")
    print(f"Saved mnemonic audio to: {output}")
    return EXIT_OK


def run_profiles(args) -> int:
    """Run the profiles command."""
    base_dir = anki_profiles_dir()
    profiles = available_profiles(base_dir)
    if not profiles:
        print(f"No Anki profiles found under {base_dir}")
        return EXIT_OK

    print(f"Anki profiles under {base_dir}:")
    for profile in profiles:
        print(f"  - {profile} ({collection_media(profile, base_dir)})")
    return EXIT_OK


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "build": run_build,
        "mnemonic": run_mnemonic,
        "profiles": run_profiles,
    }
    try:
        code = commands[args.command](args)
    except ValueError as e:
        print(f"Configuration error: {e}")
        code = EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted.")
        code = EXIT_CANCELLED
    sys.exit(code)


if __name__ == "__main__":
    main()

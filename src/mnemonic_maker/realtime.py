"""
Realtime streaming client for one-shot spoken mnemonics.

A session opens one WebSocket to the realtime endpoint, configures it for
audio + text output, submits a single ``Target: <word>`` message, requests a
response and accumulates the streamed audio and transcript until a completion
event arrives. Server messages are decoded once, at the socket boundary, into
the event types below.
"""

import asyncio
import base64
import binascii
import io
import json
import logging
import wave
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .cancellation import CancellationToken
from .errors import (
    Cancelled,
    MnemonicMakerError,
    NetworkError,
    NoAudioReceived,
    RealtimeServerError,
    RealtimeTimeoutError,
)
from .structures import (
    DEFAULT_MNEMONIC_INSTRUCTIONS,
    RealtimePhase,
    RealtimeResult,
    RealtimeSessionState,
)

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
# Audio-done events arrive before the transcript finishes, so they do not end a session.
DEFAULT_COMPLETION_EVENTS = frozenset({"response.done", "response.completed"})
SESSION_READY_EVENTS = frozenset({"session.created", "session.updated"})
ITEM_CREATED_EVENTS = frozenset({"conversation.item.created", "conversation.item.added"})
AUDIO_DELTA_EVENTS = frozenset({"response.audio.delta", "response.output_audio.delta"})
TEXT_DELTA_EVENTS = frozenset({
    "response.text.delta",
    "response.output_text.delta",
    "response.audio_transcript.delta",
    "response.output_audio_transcript.delta",
})
ERROR_EVENTS = frozenset({"error", "response.error"})

PCM16_SAMPLE_RATE = 24000


# Server events

@dataclass(frozen=True)
class SessionReady:
    type: str


@dataclass(frozen=True)
class ItemCreated:
    type: str


@dataclass(frozen=True)
class AudioDelta:
    type: str
    chunk: bytes


@dataclass(frozen=True)
class TextDelta:
    type: str
    text: str


@dataclass(frozen=True)
class ResponseCompleted:
    type: str


@dataclass(frozen=True)
class ServerError:
    type: str
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class UnrecognizedEvent:
    type: str


RealtimeEvent = Union[SessionReady, ItemCreated, AudioDelta, TextDelta,
                      ResponseCompleted, ServerError, UnrecognizedEvent]


def decode_event(message: Union[str, bytes],
                 completion_events: FrozenSet[str] = DEFAULT_COMPLETION_EVENTS) -> RealtimeEvent:
    """Decode one raw server message into a typed event."""
    try:
        payload = json.loads(message)
    except (ValueError, UnicodeDecodeError):
        return UnrecognizedEvent(type="")
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        return UnrecognizedEvent(type="")

    event_type = payload["type"]

    if event_type in ERROR_EVENTS:
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        message_text = error.get("message") or payload.get("message") or "Unknown error"
        code = error.get("code")
        return ServerError(type=event_type, message=str(message_text),
                           code=str(code) if code is not None else None)
    if event_type in completion_events:
        return ResponseCompleted(type=event_type)
    if event_type in SESSION_READY_EVENTS:
        return SessionReady(type=event_type)
    if event_type in ITEM_CREATED_EVENTS:
        return ItemCreated(type=event_type)
    if event_type in AUDIO_DELTA_EVENTS:
        encoded = payload.get("delta") or payload.get("data")
        if not isinstance(encoded, str):
            return UnrecognizedEvent(type=event_type)
        try:
            return AudioDelta(type=event_type, chunk=base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError):
            return UnrecognizedEvent(type=event_type)
    if event_type in TEXT_DELTA_EVENTS:
        delta = payload.get("delta")
        if isinstance(delta, str):
            return TextDelta(type=event_type, text=delta)
    return UnrecognizedEvent(type=event_type)


# Client commands

@dataclass(frozen=True)
class SessionUpdate:
    voice: str
    instructions: str
    output_audio_format: str = "pcm16"
    modalities: Tuple[str, ...] = ("audio", "text")
    type: str = field(default="session.update", init=False)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "session": {
                "modalities": list(self.modalities),
                "voice": self.voice,
                "instructions": self.instructions,
                "output_audio_format": self.output_audio_format,
            },
        }


@dataclass(frozen=True)
class ConversationItemCreate:
    text: str
    type: str = field(default="conversation.item.create", init=False)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": self.text}],
            },
        }


@dataclass(frozen=True)
class ResponseCreate:
    type: str = field(default="response.create", init=False)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type}


RealtimeCommand = Union[SessionUpdate, ConversationItemCreate, ResponseCreate]


# Transport

class RealtimeTransport(ABC):
    """A bidirectional text-message channel to the realtime endpoint."""

    @abstractmethod
    async def send(self, message: str):
        pass

    @abstractmethod
    async def receive(self) -> Union[str, bytes]:
        """Return the next message; raise NetworkError once the channel is closed."""
        pass

    @abstractmethod
    async def close(self):
        pass


class WebSocketTransport(RealtimeTransport):
    """Transport backed by a ``websockets`` client connection."""

    def __init__(self, connection):
        self._connection = connection

    @classmethod
    async def connect(cls, url: str, headers: Dict[str, str],
                      open_timeout: float = 20.0) -> "WebSocketTransport":
        try:
            connection = await ws_connect(url, additional_headers=headers,
                                          open_timeout=open_timeout, max_size=None)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise NetworkError(f"Could not open realtime socket: {e}") from e
        return cls(connection)

    async def send(self, message: str):
        try:
            await self._connection.send(message)
        except ConnectionClosed as e:
            raise NetworkError(f"Realtime socket closed while sending: {e}") from e

    async def receive(self) -> Union[str, bytes]:
        try:
            return await self._connection.recv()
        except ConnectionClosed as e:
            raise NetworkError(f"Realtime socket closed: {e}") from e

    async def close(self):
        await self._connection.close()


# Session

class RealtimeSession:
    """One realtime exchange, driven as a small state machine.

    The session-ready and item-created acknowledgements are advisory: if they
    do not arrive within their timeouts the session carries on, and the
    response request is always sent. Only the final completion wait is
    bounded by ``response_timeout``.
    """

    def __init__(self, connect: Callable[[], Awaitable[RealtimeTransport]],
                 target_word: str,
                 instructions: str = DEFAULT_MNEMONIC_INSTRUCTIONS,
                 voice: str = "shimmer",
                 output_audio_format: str = "pcm16",
                 session_ready_timeout: float = 20.0,
                 item_ack_timeout: float = 3.0,
                 response_timeout: float = 45.0,
                 completion_events: Iterable[str] = DEFAULT_COMPLETION_EVENTS,
                 cancel_token: Optional[CancellationToken] = None,
                 log: Optional[Callable[[str], None]] = None):
        self._connect = connect
        self.target_word = target_word
        self.instructions = instructions
        self.voice = voice
        self.output_audio_format = output_audio_format
        self.session_ready_timeout = session_ready_timeout
        self.item_ack_timeout = item_ack_timeout
        self.response_timeout = response_timeout
        self.completion_events = frozenset(completion_events)
        self.cancel_token = cancel_token
        self._log_handler = log

        self.state = RealtimeSessionState()
        self._session_ready = asyncio.Event()
        self._item_created = asyncio.Event()
        self._finished = asyncio.Event()
        self._failure: Optional[MnemonicMakerError] = None

    async def run(self) -> RealtimeResult:
        """Run the session to completion and return the accumulated audio and text."""
        transport = None
        receiver = None
        try:
            self._check_cancelled()
            transport = await self._connect()
            receiver = asyncio.create_task(self._receive_loop(transport))

            self._log("Connection opened. Sending configuration...")
            await self._send(transport, SessionUpdate(
                voice=self.voice,
                instructions=self.instructions,
                output_audio_format=self.output_audio_format,
            ))
            self._transition(RealtimePhase.AWAITING_SESSION_READY)
            if not await self._wait_advisory(self._session_ready, self.session_ready_timeout):
                self._log(f"No session acknowledgement after {self.session_ready_timeout:g}s; continuing")
            self._raise_if_failed()
            self._transition(RealtimePhase.SESSION_CONFIGURED)

            await self._send(transport, ConversationItemCreate(text=f"Target: {self.target_word}"))
            self._transition(RealtimePhase.AWAITING_ITEM_ACK)
            if not await self._wait_advisory(self._item_created, self.item_ack_timeout):
                self._log(f"No item acknowledgement after {self.item_ack_timeout:g}s; continuing")
            self._raise_if_failed()

            await self._send(transport, ResponseCreate())
            self._transition(RealtimePhase.AWAITING_RESPONSE)
            if not await self._wait_advisory(self._finished, self.response_timeout):
                self._raise_if_failed()
                raise RealtimeTimeoutError(self.response_timeout)
            self._raise_if_failed()

            self._transition(RealtimePhase.COMPLETED)
            self._log(f"Response completed: {len(self.state.audio)} audio bytes, "
                      f"{len(self.state.text)} text characters")
            if not self.state.audio:
                raise NoAudioReceived()
            return RealtimeResult(audio=bytes(self.state.audio), text=self.state.text)

        except RealtimeTimeoutError as e:
            self.state.phase = RealtimePhase.TIMED_OUT
            self.state.terminal_error = e
            self._log(str(e))
            raise
        except NoAudioReceived as e:
            self.state.terminal_error = e
            raise
        except MnemonicMakerError as e:
            self.state.phase = RealtimePhase.FAILED
            self.state.terminal_error = e
            self._log(f"Session failed: {e}")
            raise
        finally:
            if receiver is not None:
                receiver.cancel()
                with suppress(asyncio.CancelledError):
                    await receiver
            if transport is not None:
                self._log("Closing connection.")
                with suppress(MnemonicMakerError, OSError, WebSocketException):
                    await transport.close()

    def _transition(self, phase: RealtimePhase):
        logger.debug("realtime phase %s -> %s", self.state.phase.value, phase.value)
        self.state.phase = phase

    async def _send(self, transport: RealtimeTransport, command: RealtimeCommand):
        await transport.send(json.dumps(command.to_payload()))
        self._log(f"→ send: {command.type}")

    async def _receive_loop(self, transport: RealtimeTransport):
        while not self._finished.is_set():
            try:
                message = await transport.receive()
            except NetworkError as e:
                self._fail(e)
                return
            self._handle(decode_event(message, self.completion_events))

    def _handle(self, event: RealtimeEvent):
        self._log(f"← recv: {event.type or '(unparsed)'}")

        if isinstance(event, SessionReady):
            self._session_ready.set()
        elif isinstance(event, ItemCreated):
            self._item_created.set()
        elif isinstance(event, AudioDelta):
            self.state.audio.extend(event.chunk)
        elif isinstance(event, TextDelta):
            self.state.text += event.text
        elif isinstance(event, ResponseCompleted):
            self._finished.set()
        elif isinstance(event, ServerError):
            self._fail(RealtimeServerError(event.message, event.code))

    def _fail(self, error: MnemonicMakerError):
        if self._failure is None and not self._finished.is_set():
            self._failure = error
        self._finished.set()

    def _check_cancelled(self):
        if self.cancel_token is not None and self.cancel_token.is_cancelled:
            raise Cancelled("Realtime session cancelled")

    def _raise_if_failed(self):
        self._check_cancelled()
        if self._failure is not None:
            raise self._failure

    async def _wait_advisory(self, event: asyncio.Event, timeout: float) -> bool:
        """Wait for ``event``; also return early on a terminal event or cancellation."""
        waiters = [asyncio.ensure_future(event.wait())]
        if event is not self._finished:
            waiters.append(asyncio.ensure_future(self._finished.wait()))
        if self.cancel_token is not None:
            waiters.append(asyncio.ensure_future(self.cancel_token.wait()))
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        return event.is_set()

    def _log(self, message: str):
        logger.debug(message)
        if self._log_handler is not None:
            self._log_handler(message)


class RealtimeClient:
    """Opens realtime sessions against the OpenAI realtime endpoint."""

    def __init__(self, api_key: str, model: str = "gpt-realtime",
                 base_url: str = DEFAULT_REALTIME_URL,
                 connector: Optional[Callable[[], Awaitable[RealtimeTransport]]] = None,
                 session_ready_timeout: float = 20.0,
                 item_ack_timeout: float = 3.0,
                 response_timeout: float = 45.0,
                 completion_events: Iterable[str] = DEFAULT_COMPLETION_EVENTS):
        self._api_key = api_key
        self.model = model
        self.base_url = base_url
        self._connector = connector
        self.session_ready_timeout = session_ready_timeout
        self.item_ack_timeout = item_ack_timeout
        self.response_timeout = response_timeout
        self.completion_events = frozenset(completion_events)

    @property
    def url(self) -> str:
        return f"{self.base_url}?model={self.model}"

    async def _connect(self) -> RealtimeTransport:
        if self._connector is not None:
            return await self._connector()
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        return await WebSocketTransport.connect(self.url, headers)

    def create_session(self, target_word: str,
                       instructions: str = DEFAULT_MNEMONIC_INSTRUCTIONS,
                       voice: str = "shimmer",
                       cancel_token: Optional[CancellationToken] = None,
                       log: Optional[Callable[[str], None]] = None) -> RealtimeSession:
        return RealtimeSession(
            self._connect,
            target_word=target_word,
            instructions=instructions,
            voice=voice,
            session_ready_timeout=self.session_ready_timeout,
            item_ack_timeout=self.item_ack_timeout,
            response_timeout=self.response_timeout,
            completion_events=self.completion_events,
            cancel_token=cancel_token,
            log=log,
        )

    async def generate_mnemonic(self, target_word: str,
                                instructions: str = DEFAULT_MNEMONIC_INSTRUCTIONS,
                                voice: str = "shimmer",
                                cancel_token: Optional[CancellationToken] = None,
                                log: Optional[Callable[[str], None]] = None) -> RealtimeResult:
        """Run one session for ``target_word`` and return its audio and transcript."""
        session = self.create_session(target_word, instructions, voice, cancel_token, log)
        return await session.run()


def pcm16_to_wav(pcm: bytes, sample_rate: int = PCM16_SAMPLE_RATE, channels: int = 1) -> bytes:
    """Wrap raw little-endian PCM16 samples in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def create_realtime_client(api_key: str, model: str = "gpt-realtime") -> RealtimeClient:
    """Factory function to create the realtime client."""
    return RealtimeClient(api_key, model=model)

"""
Terminal front-end for voice calls.

Responsibilities:
- Load .env + AppConfig, configure JSONL logging
- Build channel, function registry, devices and the SessionGateway
- Read commands from stdin without blocking the event loop
- Print notifications as they happen

One process == one gateway. JSONL logs go to LOG_FILE, or to stderr when
ENABLE_JSON_LOGS=1 without a file; stdout is reserved for the interactive
display.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import threading
from dataclasses import replace
from typing import Any, Sequence, TextIO

from dotenv import load_dotenv

from adapters.transport.base import ChannelError
from adapters.transport.socketio_channel import SocketIOChannel
from audio.playback import AudioSink
from config import AppConfig
from observability import logger
from services.demo_functions import build_demo_registry
from session.gateway import InvalidRequest, SessionGateway
from session.voice_session import Notification

_RULE = "=" * 60

MENU = f"""
{_RULE}
Terminal Voice Call Client
{_RULE}
HOW IT WORKS:
1. Start a voice call with your auth key
2. Talk to the AI naturally through your microphone
3. AI will automatically call functions when needed
4. Function results are sent back to continue the conversation

COMMANDS:
  start <auth_key> [system_message]  - Start voice call
  stop                               - Stop current call
  status                             - Show current status
  functions                          - List loaded functions
  help                               - Show this menu
  exit                               - Exit application

EXAMPLE FUNCTION TRIGGERS:
  "What's the weather in London?"  -> calls getWeather
  "What time is it in New York?"   -> calls getCurrentTime
  "Save this as a note"            -> calls saveNote
{_RULE}"""


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------

def format_notification(note: Notification) -> str | None:  # pylint: disable=too-many-return-statements
    """One display line per notification kind; None hides the notification."""
    d = note.data
    kind = note.kind

    if kind == "call_starting":
        return f"[call] starting ({len(d.get('functions', []))} functions, voice {d.get('voice')})"
    if kind == "start_rejected":
        return f"[call] start rejected: {d.get('reason')}"
    if kind == "auth_succeeded":
        return f"[auth] authenticated, credits available: {d.get('credits')}"
    if kind == "auth_failed":
        return f"[auth] authentication failed: {d.get('reason')}"
    if kind == "auth_timeout":
        return f"[auth] no session after {d.get('timeout_ms')} ms, giving up"
    if kind == "session_ready":
        return (
            f"[call] voice session started - {d.get('message')}\n"
            f"[call] functions loaded: {d.get('functions_loaded')}, "
            f"cost per minute: {d.get('cost_per_minute')} credits"
        )
    if kind == "call_stopping":
        return "[call] stopping..."
    if kind == "session_ended":
        line = "[call] voice session ended"
        if d.get("reason") == "insufficient_user_credits":
            line += " (out of credits)"
        elif d.get("reason"):
            line += f" ({d['reason']})"
        used = d.get("total_credits_used")
        if used is not None:
            line += f"\n[call] total credits used: {used:.4f}"
        return line
    if kind == "stop_timeout":
        return "[call] server did not confirm the stop; call closed locally"
    if kind == "text":
        return f"AI: {d.get('text')}"
    if kind == "function_called":
        return f"[function] AI requested {d.get('function_name')} {d.get('arguments')}"
    if kind == "function_result":
        return f"[function] {d.get('function_name')} completed: {d.get('preview')}"
    if kind == "server_error":
        return f"[error] {d.get('message')}"
    if kind == "disconnected":
        if d.get("was_in_session"):
            return f"[conn] disconnected during call ({d.get('reason')}); start a new call"
        return f"[conn] disconnected ({d.get('reason')})"
    if kind == "fatal_error":
        return f"[fatal] {d.get('reason')}; restart the client"
    if kind == "audio_device_error":
        return f"[audio] device error: {d.get('error')}"
    return f"[{kind}] {d}"


# ------------------------------------------------------------------
# Terminal app
# ------------------------------------------------------------------

class TerminalApp:
    """Command interpreter bound to one gateway."""

    def __init__(self, *, gateway: SessionGateway, out: TextIO | None = None) -> None:
        self._gateway = gateway
        self._out = out or sys.stdout
        gateway.add_listener(self._on_notification)

    def write(self, text: str) -> None:
        self._out.write(text + "\n")
        self._out.flush()

    def _on_notification(self, note: Notification) -> None:
        line = format_notification(note)
        if line is not None:
            self.write(line)

    def show_menu(self) -> None:
        st = self._gateway.status()
        self.write(MENU)
        self.write(f"Status: {'Call Active' if st['state'] == 'ACTIVE' else st['state']}")
        self.write(f"Credits: {st['credits']}")
        self.write(f"Functions Available: {st['functions_declared']}")
        self.write(_RULE + "\n")

    async def handle_command(self, line: str) -> bool:
        """Run one command line. Returns False when the app should exit."""
        parts = line.strip().split()
        if not parts:
            return True
        command = parts[0].lower()

        if command == "start":
            auth_key = parts[1] if len(parts) > 1 else None
            system_message = " ".join(parts[2:]) or None
            try:
                await self._gateway.start_call(auth_key, system_message)
            except InvalidRequest as e:
                self.write(f"[error] {e}. Usage: start <auth_key> [system_message]")

        elif command == "stop":
            if not await self._gateway.stop_call():
                self.write("[call] no active call")

        elif command == "status":
            self._print_status(self._gateway.status())

        elif command == "functions":
            self.write("Loaded functions:")
            for i, fn in enumerate(self._gateway.registry.descriptors(), start=1):
                self.write(f"{i}. {fn.name} - {fn.description}")

        elif command == "help":
            self.show_menu()

        elif command in ("exit", "quit"):
            self.write("Shutting down...")
            return False

        else:
            self.write('Unknown command. Type "help" for available commands.')

        return True

    def _print_status(self, st: dict[str, Any]) -> None:
        self.write(f"Status: {st['state']} (connection {st['connection_status']})")
        self.write(f"Credits: {st['credits']}")
        self.write(f"Functions loaded: {st['functions_loaded']} of {st['functions_declared']}")
        if st["call_duration_s"] is not None:
            self.write(f"Call duration: {int(st['call_duration_s'])}s")
        if st["last_error"]:
            self.write(f"Last error: {st['last_error']}")

    async def run(self, stdin: TextIO | None = None) -> None:
        """Read commands until exit, EOF or cancellation."""
        lines = _start_line_reader(stdin or sys.stdin, asyncio.get_running_loop())
        while True:
            line = await lines.get()
            if line == "":
                return
            if not await self.handle_command(line):
                return


def _start_line_reader(source: TextIO, loop: asyncio.AbstractEventLoop) -> asyncio.Queue[str]:
    """
    Pump source lines into a queue from a daemon thread.

    A blocked readline() never holds up loop shutdown, so Ctrl-C at the
    prompt exits without waiting for Enter. "" marks EOF.
    """
    lines: asyncio.Queue[str] = asyncio.Queue()

    def _pump() -> None:
        while True:
            try:
                line = source.readline()
            except (OSError, ValueError) as e:
                logger.log_event({"event_type": "STDIN_READ_FAILED", "error": str(e)})
                line = ""
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                # loop already closed
                return
            if line == "":
                return

    threading.Thread(target=_pump, name="stdin-reader", daemon=True).start()
    return lines


# ------------------------------------------------------------------
# Bootstrap
# ------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voice-call",
        description="Terminal client for speech-to-speech voice calls.",
    )
    parser.add_argument("--server-url", help="override S2S_SERVER_URL")
    parser.add_argument(
        "--no-audio",
        action="store_true",
        help="run without microphone and speaker",
    )
    return parser


async def run(config: AppConfig, *, no_audio: bool = False) -> int:
    channel = SocketIOChannel(url=config.server_url)
    registry = build_demo_registry(config.notes_dir)

    sink: AudioSink | None = None
    if not no_audio:
        # PortAudio is only needed when devices are used
        from audio.devices import SpeakerSink  # pylint: disable=import-outside-toplevel
        sink = SpeakerSink(device=config.output_device)

    gateway = SessionGateway(config=config, channel=channel, registry=registry, sink=sink)

    if not no_audio:
        from audio.devices import MicrophoneSource  # pylint: disable=import-outside-toplevel
        gateway.attach_capture(
            MicrophoneSource(on_chunk=gateway.submit_capture, device=config.input_device)
        )

    app = TerminalApp(gateway=gateway)
    app.write(f"Connecting to {config.server_url} ...")
    try:
        await gateway.connect()
    except ChannelError as e:
        app.write(f"[conn] could not connect: {e}")
        await gateway.close()
        return 1

    app.write("[conn] connected")
    app.show_menu()
    try:
        await app.run()
    finally:
        await gateway.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)

    config = AppConfig.load_from_env()
    if args.server_url:
        config = replace(config, server_url=args.server_url)

    log_stream: TextIO | None = None
    if config.log_file:
        log_stream = open(config.log_file, "a", encoding="utf-8")  # pylint: disable=consider-using-with
    logger.configure(enabled=config.enable_json_logs, stream=log_stream)

    try:
        return asyncio.run(run(config, no_audio=args.no_audio))
    except KeyboardInterrupt:
        return 130
    finally:
        if log_stream is not None:
            log_stream.close()


if __name__ == "__main__":
    sys.exit(main())

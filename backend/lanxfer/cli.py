"""Command line entry points: run the relay, create rooms, send and receive files."""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

import aiofiles
import uvicorn
from loguru import logger

from lanxfer.client.connection import RelayClient
from lanxfer.client.transfer import TransferEngine
from lanxfer.config import settings
from lanxfer.exceptions import InvalidShareLinkError, LanXferError, NotConnectedError
from lanxfer.log import configure_logging
from lanxfer.models.room import generate_room_code, parse_room_code
from lanxfer.models.transfer import Artifact, Transfer
from lanxfer.services.crypto import EncryptionContext
from lanxfer.services.links import build_share_link, parse_share_link

CONNECT_TIMEOUT_S = 10.0


def cmd_serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "lanxfer.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )
    return 0


def cmd_room(args: argparse.Namespace) -> int:
    code = generate_room_code()
    crypto = EncryptionContext() if args.plaintext else EncryptionContext.generate()

    print(f"room:        {code}")
    print(f"link:        {build_share_link(args.base_url, code, crypto.key)}")
    if crypto.enabled:
        print(f"key:         {crypto.encoded_key}")
        print(f"fingerprint: {crypto.fingerprint()}")
    else:
        print("mode:        plaintext (no key, chunks are not encrypted)")
    return 0


def resolve_room(args: argparse.Namespace) -> tuple[str, EncryptionContext]:
    """Room code and encryption context from --link or --room/--key."""
    if args.link:
        link = parse_share_link(args.link)
        return link.room_code, EncryptionContext(link.key)
    if not args.room:
        raise InvalidShareLinkError("Either --link or --room is required")
    return parse_room_code(args.room), EncryptionContext.from_encoded(args.key)


def announce_mode(crypto: EncryptionContext) -> None:
    if crypto.enabled:
        logger.info("[Client] encryption {} (fingerprint {})", crypto.mode, crypto.fingerprint())
    else:
        logger.warning("[Client] no key given: files travel through the relay in PLAINTEXT")


def report_progress(transfer: Transfer) -> None:
    print(f"\r{transfer.name}: {transfer.progress:3d}%", end="", file=sys.stderr, flush=True)


async def send_one(client: RelayClient, engine: TransferEngine, path: Path) -> bool:
    """Send one file, waiting for the relay after a connection loss.

    Returns:
        True if every byte of the file was streamed
    """
    try:
        # The client may still be in its reconnect delay after the last file
        await client.wait_connected(CONNECT_TIMEOUT_S)
        mime_type = mimetypes.guess_type(path.name)[0]
        transfer = await engine.send(path, path.name, mime_type)
    except asyncio.TimeoutError:
        logger.error("[Client] {} not sent: relay unreachable", path.name)
        return False
    except NotConnectedError as e:
        logger.error("[Client] {} not sent: {}", path.name, e)
        return False

    print(file=sys.stderr)
    if not transfer.is_complete:
        logger.error(
            "[Client] {} stopped after {} of {} bytes",
            path.name, transfer.transferred_bytes, transfer.size,
        )
        return False
    return True


async def send_files(args: argparse.Namespace) -> int:
    room_code, crypto = resolve_room(args)
    missing = [str(path) for path in args.files if not path.is_file()]
    if missing:
        logger.error("[Client] not a file: {}", ", ".join(missing))
        return 2
    announce_mode(crypto)

    engine = TransferEngine(crypto)
    engine.on_progress = report_progress
    client = RelayClient(args.relay, room_code, engine)
    runner = asyncio.create_task(client.run())

    failures = 0
    try:
        try:
            await client.wait_connected(CONNECT_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.error("[Client] could not reach the relay at {}", args.relay)
            return 1
        for path in args.files:
            if not await send_one(client, engine, path):
                failures += 1
    finally:
        await client.stop()
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)

    return 1 if failures else 0


async def receive_files(args: argparse.Namespace) -> int:
    room_code, crypto = resolve_room(args)
    announce_mode(crypto)

    out_dir: Path = args.out
    out_dir.mkdir(parents=True, exist_ok=True)
    done = asyncio.Event()
    received = 0

    async def save(artifact: Artifact) -> None:
        nonlocal received
        target = unique_path(out_dir, artifact.name)
        async with aiofiles.open(target, "wb") as f:
            await f.write(artifact.data)
        print(file=sys.stderr)
        logger.info("[Client] saved {} ({} bytes)", target, artifact.size)
        received += 1
        if args.count and received >= args.count:
            done.set()

    def report_error(transfer: Transfer, message: str) -> None:
        print(file=sys.stderr)
        logger.error("[Client] {}: {}", transfer.name, message)

    engine = TransferEngine(crypto)
    engine.on_progress = report_progress
    engine.on_artifact = save
    engine.on_error = report_error
    client = RelayClient(args.relay, room_code, engine)
    runner = asyncio.create_task(client.run())

    try:
        waiter = asyncio.create_task(done.wait())
        await asyncio.wait({runner, waiter}, return_when=asyncio.FIRST_COMPLETED)
        waiter.cancel()
        if runner.done():
            runner.result()
    finally:
        await client.stop()
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)
    return 0


def unique_path(directory: Path, name: str) -> Path:
    """A path in ``directory`` for ``name`` that does not overwrite anything."""
    base = Path(name).name or "download"
    target = directory / base
    stem, suffix = Path(base).stem, Path(base).suffix
    n = 1
    while target.exists():
        target = directory / f"{stem} ({n}){suffix}"
        n += 1
    return target


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lanxfer", description="End-to-end encrypted file transfer through a room relay."
    )
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the relay")
    s.add_argument("--host", default=settings.host)
    s.add_argument("--port", type=int, default=settings.port)
    s.set_defaults(func=cmd_serve)

    r = sub.add_parser("room", help="Create a room code, key and share link")
    r.add_argument("--base-url", default=f"http://localhost:{settings.port}/")
    r.add_argument("--plaintext", action="store_true", help="Do not generate a key")
    r.set_defaults(func=cmd_room)

    def add_room_args(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--relay", required=True, help="Relay URL, e.g. ws://host:3001/api/ws")
        sp.add_argument("--link", help="Share link carrying room code and key")
        sp.add_argument("--room", help="Room code")
        sp.add_argument("--key", help="URL-safe base64 key")

    sd = sub.add_parser("send", help="Send files to the room")
    add_room_args(sd)
    sd.add_argument("files", nargs="+", type=Path)
    sd.set_defaults(func=lambda a: asyncio.run(send_files(a)))

    rc = sub.add_parser("receive", help="Receive files from the room")
    add_room_args(rc)
    rc.add_argument("--out", type=Path, default=settings.download_dir)
    rc.add_argument("--count", type=int, default=0, help="Exit after N files (0 = run forever)")
    rc.set_defaults(func=lambda a: asyncio.run(receive_files(a)))

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return int(args.func(args))
    except ValueError as e:
        # Bad room code, link or key
        logger.error("{}", e)
        return 2
    except LanXferError as e:
        logger.error("{}", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

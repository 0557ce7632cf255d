"""
notifyhub CLI — Service runner and operator commands.

Commands:
- notifyhub run           — Start the HTTP surface and the Kafka consumer
- notifyhub check-config  — Validate notifyhub.yaml + environment and print it (secrets masked)
- notifyhub produce       — Publish a JSON file to a Kafka topic (local testing)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from notifyhub.engine.errors import RelayConfigError

logger = logging.getLogger("notifyhub.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="notifyhub",
        description="notifyhub — Task notification relay",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # notifyhub run
    run_parser = subparsers.add_parser("run", help="Start the notification service")
    run_parser.add_argument("--config", help="Path to notifyhub.yaml (default: auto-discover)")
    run_parser.add_argument("--host", help="Host to bind (default: server.host)")
    run_parser.add_argument("--port", type=int, help="Port to bind (default: server.port)")

    # notifyhub check-config
    check_parser = subparsers.add_parser("check-config", help="Validate and print configuration")
    check_parser.add_argument("--config", help="Path to notifyhub.yaml (default: auto-discover)")

    # notifyhub produce
    produce_parser = subparsers.add_parser("produce", help="Publish a JSON message to Kafka")
    produce_parser.add_argument("topic", help="Topic name (e.g., task-events)")
    produce_parser.add_argument("file", help="Path to a JSON file holding the message value")
    produce_parser.add_argument("--key", help="Optional message key")
    produce_parser.add_argument("--config", help="Path to notifyhub.yaml (default: auto-discover)")

    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "check-config":
        return cmd_check_config(args)
    elif args.command == "produce":
        return cmd_produce(args)
    else:
        parser.print_help()
        return 0


def _load(config_path: Optional[str]):
    from notifyhub.engine.config import load_settings

    return load_settings(config_path)


def cmd_run(args: argparse.Namespace) -> int:
    """Start uvicorn with the application factory."""
    import uvicorn

    from notifyhub.app import create_app
    from notifyhub.engine.logging import configure_logging

    try:
        settings = _load(args.config)
    except RelayConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    configure_logging(settings.logging.level, settings.logging.format)
    host = args.host or settings.server.host
    port = args.port or settings.server.port

    print(f"Starting notifyhub on {host}:{port} ({settings.environment})...")
    try:
        uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.logging.level.lower())
    except KeyboardInterrupt:
        print("\nServer stopped.")
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    """Validate configuration and print it with secrets masked."""
    try:
        settings = _load(args.config)
    except RelayConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    print(json.dumps(settings.masked(), indent=2))
    print("\n[OK] Configuration valid")
    return 0


def cmd_produce(args: argparse.Namespace) -> int:
    """Publish one JSON document to a topic."""
    path = Path(args.file)
    if not path.exists():
        print(f"[ERROR] File not found: {args.file}")
        return 1

    try:
        value = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"[ERROR] {args.file} is not valid JSON: {e}")
        return 1

    try:
        settings = _load(args.config)
    except RelayConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    try:
        asyncio.run(_produce(settings.kafka, args.topic, value, args.key))
    except Exception as e:
        print(f"[ERROR] Failed to publish to {args.topic}: {e}")
        return 1

    print(f"[OK] Published to {args.topic}")
    return 0


async def _produce(kafka_config, topic: str, value, key: Optional[str]) -> None:
    from aiokafka import AIOKafkaProducer

    producer = AIOKafkaProducer(
        bootstrap_servers=kafka_config.brokers,
        client_id=f"{kafka_config.client_id}-cli",
    )
    await producer.start()
    try:
        await producer.send_and_wait(
            topic,
            value=json.dumps(value).encode("utf-8"),
            key=key.encode("utf-8") if key else None,
        )
    finally:
        await producer.stop()


if __name__ == "__main__":
    sys.exit(main())

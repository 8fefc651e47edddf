"""Typer CLI entrypoint."""

from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Any

import typer

from blebridge.core.config_loader import LoadedConfig, load_config, normalize_uuid, parse_presentation_hint
from blebridge.core.decoder import SampleDecoder, display_type_for_hint
from blebridge.core.errors import BlebridgeError
from blebridge.core.model import DisplayType, PresentationFormat
from blebridge.core.service import ObservedCharacteristic
from blebridge.transports.ble_gatt import BleakAttributeLink

app = typer.Typer(help="Decode BLE characteristic values and relay streamed samples over TCP")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config_path: Path | None) -> LoadedConfig:
    loaded = load_config(config_path)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded


def _parse_hex(payload: str) -> bytes:
    normalized = payload.strip().lower()
    for sep in (" ", ":", "-"):
        normalized = normalized.replace(sep, "")
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    try:
        return bytes.fromhex(normalized)
    except ValueError:
        raise typer.BadParameter(f"'{payload}' is not a hex byte string") from None


@app.command("formats")
def list_formats() -> None:
    """List presentation-hint names and the display type each resolves to."""
    for fmt in PresentationFormat:
        typer.echo(f"{fmt.name.lower()} (0x{fmt.value:02x}) -> {display_type_for_hint(fmt).value}")


@app.command("decode")
def decode_value(
    payload: str = typer.Argument(..., help="Raw value as hex, e.g. 0102 or 01:02"),
    hint: str | None = typer.Option(None, "--hint", help="Presentation format name, e.g. uint16"),
    name: str = typer.Option("", "--name", help="Attribute name, e.g. DeviceName"),
    display: DisplayType = typer.Option(DisplayType.UNSET, "--type", help="Force a display type"),
) -> None:
    """Decode a single raw value the way a notification would be decoded."""
    try:
        raw = _parse_hex(payload)
        presentation = parse_presentation_hint(hint, context="--hint") if hint else None
        result = SampleDecoder().decode(raw, presentation, display, name)
        typer.echo(f"type={result.display_type.value}")
        typer.echo(f"value={result.value}")
        if result.samples:
            typer.echo(f"samples={','.join(str(s) for s in result.samples)}")
    except BlebridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(None, "--config", help="Config file to use instead of the user config"),
) -> None:
    """Print the resolved configuration."""
    try:
        config = _load(config_path).config
        bridge = config.bridge
        typer.echo(f"bridge: {bridge.host}:{bridge.port}")
        typer.echo(f"  period_ms: {bridge.period_ms:g}")
        typer.echo(f"  start_delay_s: {bridge.start_delay_s:g}")
        typer.echo(f"  close_grace_s: {bridge.close_grace_s:g}")
        typer.echo(f"  connect_timeout_s: {bridge.connect_timeout_s:g}")
        typer.echo(f"  write_timeout_s: {bridge.write_timeout_s:g}")
        typer.echo(f"  queue_warn_threshold: {bridge.queue_warn_threshold}")
        typer.echo(f"reads.use_cached: {str(config.use_cached_reads).lower()}")
        for uuid, spec in sorted(config.characteristics.items()):
            hint = spec.presentation_hint.name.lower() if spec.presentation_hint is not None else "-"
            typer.echo(f"{uuid}: hint={hint} type={spec.display_type.value}")
    except BlebridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("stream")
def stream(
    address: str = typer.Argument(..., help="Peripheral address"),
    char_uuid: str = typer.Argument(..., help="Characteristic UUID"),
    host: str | None = typer.Option(None, "--host", help="TCP consumer host"),
    port: int | None = typer.Option(None, "--port", help="TCP consumer port"),
    period_ms: float | None = typer.Option(None, "--period-ms", help="Drain cadence in milliseconds"),
    display: DisplayType | None = typer.Option(None, "--type", help="Display type, defaults to stream"),
    name: str | None = typer.Option(None, "--name", help="Attribute name used for inference"),
    echo: bool = typer.Option(False, "--echo", help="Print each decoded value"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file to use instead of the user config"),
) -> None:
    """Subscribe to a characteristic and relay its samples to a TCP consumer until Ctrl+C."""
    try:
        config = _load(config_path).config
        overrides: dict[str, Any] = {}
        if host:
            overrides["host"] = host
        if port:
            overrides["port"] = port
        if period_ms:
            overrides["period_ms"] = period_ms
        if overrides:
            config = dataclasses.replace(config, bridge=dataclasses.replace(config.bridge, **overrides))

        uuid = normalize_uuid(char_uuid, context="CHAR_UUID")
        spec = config.characteristic(uuid)
        if display is None:
            display = spec.display_type if spec.display_type is not DisplayType.UNSET else DisplayType.STREAM

        link = BleakAttributeLink(address, uuid, timeout_s=config.bridge.connect_timeout_s)
        try:
            link.connect()
            hint = spec.presentation_hint
            if hint is None:
                hint = link.presentation_format()
            characteristic = ObservedCharacteristic(
                link,
                name=name or uuid,
                uuid=uuid,
                config=config,
                hint=hint,
                display_type=display,
            )
            if echo:
                characteristic.add_observer(
                    lambda prop, value: typer.echo(f"{prop}={getattr(value, 'value', value)}")
                )
            if not characteristic.enable_notify():
                typer.echo(f"Error: could not enable notifications on {uuid}", err=True)
                raise typer.Exit(code=1)

            typer.echo(
                f"Streaming {uuid} from {address} to {config.bridge.host}:{config.bridge.port} "
                f"as {characteristic.display_type.value} (Ctrl+C to stop)"
            )
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                typer.echo("Stopping")
            finally:
                characteristic.close()
        finally:
            link.disconnect()
    except BlebridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

"""Command-line interface for wagi.

Runs one module against a synthetic request and prints the response.  MODULE
is a .wasm file, or a module id resolved under WAGI_MODULES_DIR.

Usage:
    wagi hello.wasm                                  # GET /
    wagi hello.wasm --path /hello --query 'name=x'
    wagi echo.wasm -X POST -d @payload.json -H 'Content-Type: application/json'
    wagi fetch.wasm --allow-host https://api.example.com --max-http-requests 2
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from wagi import (
    FileModuleResolver,
    HandlerConfig,
    InboundRequest,
    OutwardResponse,
    Settings,
    WagiError,
    WagiHost,
    __version__,
)
from wagi._logging import configure_logging

EXIT_SUCCESS = 0
EXIT_HTTP_ERROR = 1
EXIT_GATEWAY_ERROR = 125


def parse_pairs(pairs: tuple[str, ...], param_hint: str) -> dict[str, str]:
    """Parse KEY=VALUE strings.

    Raises:
        click.BadParameter: If format is invalid
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Invalid format: '{pair}'. Use KEY=VALUE format.", param_hint=param_hint)
        result[key] = value
    return result


def parse_headers(headers: tuple[str, ...]) -> list[tuple[str, str]]:
    """Parse 'Name: value' strings, keeping order and duplicates."""
    result: list[tuple[str, str]] = []
    for header in headers:
        name, sep, value = header.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Invalid header: '{header}'. Use 'Name: value'.", param_hint="'-H' / '--header'")
        result.append((name.strip(), value.strip()))
    return result


def read_body(data: str | None) -> bytes:
    """Resolve -d: literal text, @file, or '-' for stdin."""
    if data is None:
        return b""
    if data == "-":
        return sys.stdin.buffer.read()
    if data.startswith("@"):
        return Path(data[1:]).read_bytes()
    return data.encode()


def format_response(response: OutwardResponse) -> bytes:
    """Render as an HTTP/1.1 response message."""
    reason = f" {response.reason}" if response.reason else ""
    lines = [f"HTTP/1.1 {response.status_code}{reason}"]
    lines.extend(f"{name}: {value}" for name, value in response.headers)
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + response.body


def format_response_json(response: OutwardResponse) -> str:
    output = {
        "status_code": response.status_code,
        "reason": response.reason,
        "headers": [[name, value] for name, value in response.headers],
        "body": response.body.decode(errors="replace"),
    }
    return json.dumps(output, indent=2)


async def run_module(
    request: InboundRequest,
    handler: HandlerConfig,
    settings: Settings,
    json_output: bool,
) -> int:
    """Run the handler and print its response; return the CLI exit code."""
    resolver = FileModuleResolver.from_settings(settings)
    host = WagiHost(resolver, settings=settings)
    try:
        response = await host.process_request(request, handler)
    except WagiError as e:
        click.echo(click.style(f"Error ({e.kind.value}): {e.message}", fg="red", bold=True), err=True)
        return EXIT_GATEWAY_ERROR

    if json_output:
        click.echo(format_response_json(response))
    else:
        sys.stdout.buffer.write(format_response(response))
        sys.stdout.buffer.flush()

    return EXIT_SUCCESS if response.status_code < 400 else EXIT_HTTP_ERROR  # noqa: PLR2004


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("module")
@click.option("-X", "--method", default="GET", show_default=True, help="HTTP method")
@click.option("--path", "request_path", default="/", show_default=True, help="Request path")
@click.option("--query", default="", help="Query string")
@click.option("-H", "--header", "headers", multiple=True, help="Request header 'Name: value' (repeatable)")
@click.option("-d", "--data", help="Request body: text, @file, or - for stdin")
@click.option("--route", help="Route pattern the request matched (e.g. /app/...)")
@click.option("--entry-point", help="Exported function to invoke")
@click.option("--allow-host", "allowed_hosts", multiple=True, help="Allowed outbound HTTP host (repeatable)")
@click.option("--max-http-requests", type=click.IntRange(min=0), help="Outbound HTTP calls per request")
@click.option("-v", "--volume", "volumes", multiple=True, help="Mount ALIAS=HOST_DIR (repeatable)")
@click.option("-e", "--env", "env_vars", multiple=True, help="Environment variable KEY=VALUE (repeatable)")
@click.option("--memory-limit", type=click.IntRange(min=1), help="Guest memory limit in bytes")
@click.option("--json", "json_output", is_flag=True, help="Output response as JSON")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(__version__, "-V", "--version", prog_name="wagi")
def main(
    module: str,
    method: str,
    request_path: str,
    query: str,
    headers: tuple[str, ...],
    data: str | None,
    route: str | None,
    entry_point: str | None,
    allowed_hosts: tuple[str, ...],
    max_http_requests: int | None,
    volumes: tuple[str, ...],
    env_vars: tuple[str, ...],
    memory_limit: int | None,
    json_output: bool,
    quiet: bool,
) -> NoReturn:
    """Run a WAGI module against a single HTTP request.

    Examples:

    \b
      wagi hello.wasm --path /hello --query 'greeting=hi'
      wagi echo.wasm -X POST -d @body.json -H 'Content-Type: application/json'
      wagi app.wasm --route '/app/...' --path /app/users/1
      wagi fetch.wasm --allow-host https://api.example.com
    """
    configure_logging(quiet=quiet)
    settings = Settings()
    module_path = Path(module)
    if module_path.is_file() or module_path.parent != Path("."):
        # a path runs in place; a bare name that is not a file here resolves under WAGI_MODULES_DIR
        settings = settings.model_copy(update={"modules_dir": module_path.parent})
        module = module_path.name

    try:
        handler = HandlerConfig(
            module=module,
            entry_point=entry_point or None,
            route=route,
            volumes=parse_pairs(volumes, "'-v' / '--volume'"),
            environment=parse_pairs(env_vars, "'-e' / '--env'"),
            allowed_hosts=list(allowed_hosts),
            max_http_requests=max_http_requests,
            memory_limit_bytes=memory_limit,
        )
        request = InboundRequest(
            method=method.upper(),
            path=request_path,
            query_string=query,
            headers=parse_headers(headers),
            body=read_body(data),
            matched_route=route,
            client_address="127.0.0.1",
        )
    except click.BadParameter as exc:
        raise click.UsageError(str(exc)) from exc

    exit_code = asyncio.run(run_module(request, handler, settings, json_output))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

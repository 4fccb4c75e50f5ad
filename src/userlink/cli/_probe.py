"""userlink probe — one-shot reachability check."""

from __future__ import annotations

import asyncio
import json

from rich.console import Console

from userlink.core.config import UserlinkConfig
from userlink.core.constants import ExitCode
from userlink.core.exceptions import TransportConnectionError
from userlink.transport.factory import probe_endpoint


def cmd_probe(
    config: UserlinkConfig,
    url: str | None,
    timeout: float | None,
    as_json: bool,
    console: Console,
) -> int:
    target = url or config.transport.url
    limit = timeout if timeout is not None else config.transport.probe_timeout_seconds

    data = {
        "url": target,
        "timeout_seconds": limit,
        "reachable": True,
        "reason": None,
        "detail": "",
    }
    try:
        asyncio.run(probe_endpoint(target, limit))
    except TransportConnectionError as exc:
        data.update(reachable=False, reason=exc.reason, detail=str(exc))

    if as_json:
        print(json.dumps(data, indent=2))
    elif data["reachable"]:
        console.print(f"[green]REACHABLE[/green]  {target}")
    else:
        console.print(f"[red]UNREACHABLE[/red]  {target}")
        console.print(f"  {data['detail']}")
        console.print("  [dim]userlink login will fall back to the simulated transport.[/dim]")

    return ExitCode.SUCCESS if data["reachable"] else ExitCode.NETWORK_ERROR

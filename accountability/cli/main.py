import json

import click
import httpx


@click.group()
@click.version_option(version="0.1.0", prog_name="accountability")
def cli() -> None:
    """Accountability agent - turns chat commitments into scheduled reminders."""
    pass


@cli.command()
@click.option("--url", default="http://127.0.0.1:8000", help="API base URL")
@click.option("--json", "as_json", is_flag=True, help="JSON output for agent consumption.")
def health(url: str, as_json: bool) -> None:
    """Check accountability API health."""
    try:
        response = httpx.get(f"{url}/api/health", timeout=5)
        data = response.json()
        if as_json:
            click.echo(json.dumps({"ok": data.get("status") == "ok", "data": data}, indent=2, default=str))
        else:
            click.echo(f"Status: {data['status']}")
            click.echo(f"  DB:    {'OK' if data['db'] else 'FAIL'}")
            click.echo(f"  Redis: {'OK' if data['redis'] else 'FAIL'}")
    except Exception as e:
        if as_json:
            click.echo(json.dumps({"ok": False, "error": str(e), "code": "CONNECTION_ERROR", "retryable": True}))
        else:
            click.echo(f"Could not reach API: {e}", err=True)
        raise SystemExit(1)


# Register subcommands
from accountability.cli.reminders import reminders_cmd, send_event_cmd  # noqa: E402
from accountability.cli.worker import analyze_cmd, dispatch_cmd, register_device_cmd  # noqa: E402

cli.add_command(reminders_cmd)
cli.add_command(send_event_cmd)
cli.add_command(analyze_cmd)
cli.add_command(dispatch_cmd)
cli.add_command(register_device_cmd)

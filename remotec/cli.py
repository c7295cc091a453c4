from __future__ import annotations

import logging

import click
import uvicorn

from . import __version__
from .api import create_app
from .config import ConfigError, load_settings
from .logging_config import configure_logging
from .service_container import build_services

logger = logging.getLogger(__name__)

EPILOG = """\b
Request parameters (query string or JSON body):
  action   loop | multiple | stop | stopAll (empty runs once)
  delay    seconds between runs for loop / multiple
  count    number of runs for multiple
  exec_id  execution id returned by a previous call, for stop

\b
Examples:
  remotec -p 8080 -c "ping -c 1 127.0.0.1" --token secret
  curl 'http://localhost:8080/path'
  curl 'http://localhost:8080/path?action=loop&delay=5'
  curl 'http://localhost:8080/path?action=multiple&count=3'
  curl 'http://localhost:8080/path?action=stop&exec_id=<id>'
"""


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog=EPILOG,
    no_args_is_help=True,
)
@click.option("-p", "--port", type=int, default=None, help="Port to listen on (required).")
@click.option("-c", "--command", default=None, help="Shell command to execute (required).")
@click.option("--token", default=None, help="Require 'Authorization: Bearer <token>' on every request.")
@click.option("--endpoint", default=None, help="Endpoint path; a random one is generated when omitted.")
@click.option("--host", default=None, help="Address to bind to.")
@click.option("--shell", default=None, help="Shell used to run the command on POSIX systems.")
@click.option("--max-executions", type=int, default=None, help="Cap on concurrently active executions (0 = unlimited).")
@click.option("--max-output-bytes", type=int, default=None, help="Keep only the last N bytes of output (0 = unbounded).")
@click.option("--result-log", "result_log_path", default=None, help="Append one JSON record per run to this file.")
@click.option("--log-level", default=None, help="Logging level.")
@click.version_option(__version__, prog_name="remotec")
def main(**options: object) -> None:
    """Expose one fixed shell command over HTTP."""
    try:
        settings = load_settings(**options)
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc

    configure_logging(settings)
    services = build_services(settings)
    app = create_app(services)

    logger.info("Service ready, endpoint: http://localhost:%s/%s", settings.port, services.endpoint)
    logger.info("Listening on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()

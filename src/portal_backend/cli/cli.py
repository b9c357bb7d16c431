import logging

import click
import uvicorn

from portal_backend.settings import settings
from .admin import admin
from .cache import cache
from .seed import seed


@click.command()
@click.option("--host", "host", default="0.0.0.0", show_default=True)
@click.option("--port", "port", type=int, default=8000, show_default=True)
@click.option("--reload/--no-reload", "reload", default=False)
def serve(host, port, reload):

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    uvicorn.run(
        "portal_backend.server:app",
        host=host,
        port=port,
        log_level=settings.LOG_LEVEL.lower(),
        reload=reload,
        workers=1,
    )


@click.group()
def cli():
    pass

cli.add_command(serve, "serve")
cli.add_command(seed, "seed")
cli.add_command(cache, "cache")
cli.add_command(admin, "admin")

if __name__ == '__main__':
    cli()

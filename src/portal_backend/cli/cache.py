import asyncio

import click

from portal_backend.cache import get_cache


async def _clear():
    cache = get_cache()
    await cache.clear()
    return cache.backend


async def _delete_pattern(pattern: str):
    cache = get_cache()
    return await cache.delete_by_pattern(pattern), cache.backend


@click.command()
@click.confirmation_option(prompt="Remove every cached entry?")
def clear():
    backend = asyncio.run(_clear())
    click.echo(f"Cache cleared ({backend})")


@click.command()
@click.argument("pattern")
def delete_pattern(pattern):
    deleted, backend = asyncio.run(_delete_pattern(pattern))
    click.echo(f"Deleted {deleted} keys matching {pattern} ({backend})")


@click.group()
def cache():
    pass

cache.add_command(clear, "clear")
cache.add_command(delete_pattern, "delete-pattern")

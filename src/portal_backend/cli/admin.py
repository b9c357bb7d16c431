import click

from portal_backend.auth.passwords import hash_password
from portal_backend.database import get_db
from portal_backend.model.seeder import ensure_superuser, seed_permissions, seed_groups


@click.command()
@click.option("--email", "-e", "email", prompt=True)
@click.option("--password", "-p", "password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", "-n", "name", default="Administrator", show_default=True)
def create_superuser(email, password, name):

    with next(get_db()) as db:
        seed_groups(db, seed_permissions(db))
        user, created = ensure_superuser(db, email, hash_password(password), name)

    if created:
        click.echo(f"Created superuser {email} ({user.id})")
    else:
        click.echo(f"{email} already exists, super admin membership ensured")


@click.group()
def admin():
    pass

admin.add_command(create_superuser, "create-superuser")

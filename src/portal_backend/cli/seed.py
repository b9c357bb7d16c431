import click

from portal_backend.auth.passwords import hash_password
from portal_backend.database import get_db
from portal_backend.model.seeder import create_fake_users, seed_defaults


@click.command()
@click.option("--fake-users", "fake_users", type=int, default=0, help="Number of random development users to add")
@click.option("--fake-password", "fake_password", default="password123", show_default=True)
@click.option("--seed", "seed", type=int, default=None, help="Random seed for reproducible fake data")
def seed(fake_users, fake_password, seed):

    with next(get_db()) as db:
        result = seed_defaults(db)
        click.echo(
            f"Permissions: {result['permissions']}, groups: {result['groups']}, "
            f"users assigned to the default group: {result['users_assigned']}"
        )

        if fake_users > 0:
            users = create_fake_users(db, fake_users, hash_password(fake_password), seed)
            click.echo(f"Created {len(users)} fake users")

import click

from .admin import admin

@click.group()
def cli():
    pass

cli.add_command(admin,"admin")

if __name__ == '__main__':
    cli()

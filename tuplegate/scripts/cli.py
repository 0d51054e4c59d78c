"""
A simple CLI for running the server.
"""

import sys

import uvicorn


def run_server(settings):
    uvicorn.run("tuplegate.api.app:app", host=settings.hostname, port=settings.port)


def setup(settings):
    settings.sync_manager().create_all()


def main():
    from tuplegate.config.settings import Settings

    try:
        command = sys.argv[1]
    except IndexError:
        command = None

    if command not in ("run", "setup"):
        print("Only supported commands are tuplegate run and tuplegate setup")
        exit(1)

    settings = Settings()

    if command == "setup":
        setup(settings=settings)
        print(f"Tables created in {settings.database_type} database {settings.database_db}")
        exit(0)

    run_server(settings=settings)

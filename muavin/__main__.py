"""Entry point for running muavin as a module: python -m muavin."""

from muavin.cli.commands import app

if __name__ == "__main__":
    app()

"""
Entry point for running picobot as a module: python -m picobot
"""

from picobot.cli.commands import app

if __name__ == "__main__":
    app()

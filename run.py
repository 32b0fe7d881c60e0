"""Entry point for running the PlodLog web application."""

from plodlog import create_app
from plodlog.observability import setup_structured_logging

setup_structured_logging()
app = create_app()

if __name__ == "__main__":
    app.run()

"""Entry point for python -m cafeteria_billing."""

from cafeteria_billing.cli import app

if __name__ == "__main__":
    app()

"""Entry point for ``python -m ubuntu_preseed_iso``."""

from ubuntu_preseed_iso.cli import app

if __name__ == "__main__":
    app()

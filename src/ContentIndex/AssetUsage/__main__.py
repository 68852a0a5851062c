"""Allow ``python -m ContentIndex.AssetUsage``."""

from .cli import app

if __name__ == "__main__":
    app()

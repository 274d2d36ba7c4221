"""Entry point for the Tessera CLI when run as ``python -m tessera``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()

"""Allow ``python -m RpkiMirror.RrdpFetch``."""

from .cli import main

if __name__ == "__main__":
    main()

"""Allow ``python -m toolscript``."""

from toolscript.cli.main import main

if __name__ == "__main__":
    main()

"""Allow ``python -m nodescope``."""

import sys

from nodescope.cli import cli_main


def main() -> int:
    """Run the CLI and turn its exit into a process status."""
    try:
        cli_main()
    except SystemExit as e:
        if e.code is None or isinstance(e.code, int):
            return e.code or 0
        print(e.code, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        # 128 + SIGINT
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Host runtime entrypoint for the worker.

Boots the application, then runs a script inside it:

    python -m runprobe.host runner <script> [args...]

The application module comes from RUNPROBE_APP and is imported relative to
the current directory. Fd 1 is reserved for the script's protocol frames
before the application loads; other stdout output goes to stderr.
"""

import argparse
import os
import runpy
import sys
from pathlib import Path

from runprobe.runner import application


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="runprobe.host",
        description="Boot an application and run a script inside it",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    runner = subparsers.add_parser("runner", help="Run a script with the application loaded")
    runner.add_argument("script", help="Path to the script to run")
    runner.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the script")

    args = parser.parse_args(argv)

    script = Path(args.script)
    if not script.is_file():
        parser.error(f"script not found: {script}")

    application.reserve_stdout()

    try:
        application.boot(os.environ.get("RUNPROBE_APP", ""), Path.cwd())
    except (ValueError, ImportError) as e:
        print(f"Failed to boot application: {e}", file=sys.stderr)
        sys.exit(1)

    sys.argv = [str(script), *args.args]
    runpy.run_path(str(script), run_name="__main__")


if __name__ == "__main__":
    main()

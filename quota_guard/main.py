#!/usr/bin/env python3
"""Main entry point for the quota-guard service."""

import argparse
import sys
from typing import Optional, Sequence

from quota_guard import __version__


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the main application.
    
    Args:
        argv: Command line arguments, defaults to ``sys.argv[1:]``.

    Returns:
        An integer exit code.
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Fingerprint and address quota guard"
    )
    parser.add_argument("--server", action="store_true", help="Start the web server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    
    args: argparse.Namespace = parser.parse_args(argv)
    
    if args.server:
        from quota_guard.server import app
        import uvicorn
        uvicorn.run(app, host=args.host, port=args.port, access_log=False)
    else:
        print("Quota Guard")
        print("Use --server flag to start the web server")
        return 1
    
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python
"""
Flowstore launcher
Starts the FastAPI backend under uvicorn, over TLS when a key/cert pair is set.
"""
import sys
from pathlib import Path

import uvicorn

from flowstore.core.config import settings


class Colors:
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    CYAN = '\033[96m'
    END = '\033[0m'
    BOLD = '\033[1m'


def check_env_file():
    """Check if .env file exists"""
    if not Path(".env").exists():
        print(f"{Colors.YELLOW}⚠️  Warning: .env file not found, using defaults{Colors.END}")
        return False
    print(f"{Colors.GREEN}✓ .env file found{Colors.END}")
    return True


def check_certificates():
    """Return uvicorn TLS options, or an empty dict for plain HTTP."""
    if not settings.tls_enabled():
        print(f"{Colors.YELLOW}⚠️  SSL_KEYFILE/SSL_CERTFILE not set, serving plain HTTP{Colors.END}")
        return {}

    for path in (settings.ssl_keyfile, settings.ssl_certfile):
        if not Path(path).exists():
            print(f"{Colors.RED}✗ Certificate file not found: {path}{Colors.END}")
            sys.exit(1)

    print(f"{Colors.GREEN}✓ TLS certificates found{Colors.END}")
    return {"ssl_keyfile": settings.ssl_keyfile, "ssl_certfile": settings.ssl_certfile}


def main():
    print(f"\n{Colors.CYAN}{Colors.BOLD}Flowstore API{Colors.END}\n")
    check_env_file()
    tls_options = check_certificates()

    scheme = "https" if tls_options else "http"
    print(f"  • API base URL: {Colors.BOLD}{scheme}://localhost:{settings.port}/api{Colors.END}")
    print(f"  • Health:       {Colors.BOLD}{scheme}://localhost:{settings.port}/health{Colors.END}\n")

    uvicorn.run(
        "flowstore.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        **tls_options,
    )


if __name__ == "__main__":
    main()

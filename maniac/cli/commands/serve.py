"""
Maniac CLI Serve Command
========================

Run the development server.
"""

from __future__ import annotations

import uvicorn


def run_server(
    target: str,
    host: str = "127.0.0.1",
    port: int = 8000,
    reload: bool = False,
    workers: int = 1,
) -> int:
    """
    Run the application under uvicorn.

    Args:
        target: ``module:attribute`` of the application
        host: Host to bind to
        port: Port to bind to
        reload: Enable auto-reload
        workers: Number of workers (ignored with reload)

    Returns:
        Exit code
    """
    print("Starting Maniac development server...")
    print(f"  URL: http://{host}:{port}")
    print(f"  Reload: {'enabled' if reload else 'disabled'}")
    print()

    config = uvicorn.Config(
        target,
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,
        log_level="info",
        lifespan="on",
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    except KeyboardInterrupt:
        print("\nShutting down...")

    return 0

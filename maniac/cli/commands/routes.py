"""
Maniac CLI Routes Command
=========================

List all registered routes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Tuple

if TYPE_CHECKING:
    from maniac.core.application import Application
    from maniac.core.router import Router


def extract_routes(router: "Router") -> List[Tuple[str, str, str, str, str]]:
    """
    Extract routes in registration order.

    Returns:
        List of (method, uri, name, action, middleware) tuples
    """
    return [
        (
            route.method,
            route.uri,
            route.route_name or "",
            route.action_name,
            ", ".join(m if isinstance(m, str) else getattr(m, "__name__", type(m).__name__) for m in route.middlewares),
        )
        for route in router.routes()
    ]


def list_routes(app: "Application") -> int:
    """
    Print the route table.

    Returns:
        Exit code
    """
    routes = extract_routes(app.router)

    if not routes:
        print("No routes found")
        return 0

    headers = ("Method", "URI", "Name", "Action", "Middleware")
    widths = [max(len(headers[i]), *(len(row[i]) for row in routes)) for i in range(len(headers))]

    def line(values) -> str:
        return "  ".join(str(value).ljust(width) for value, width in zip(values, widths)).rstrip()

    print(line(headers))
    print(line("-" * width for width in widths))
    for row in routes:
        print(line(row))
    print(f"\nTotal: {len(routes)} route(s)")
    return 0

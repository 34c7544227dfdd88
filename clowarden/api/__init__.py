"""CLOWarden HTTP API layer.

Usage
-----
Create and run the application::

    from clowarden.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # with organization endpoints
"""

from clowarden.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]

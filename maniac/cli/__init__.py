"""
Maniac CLI
==========

Command-line interface for the Maniac framework.

Commands:
- serve: Run development server
- migrate, migrate:rollback, migrate:reset, migrate:refresh, migrate:status
- make:migration: Create a migration file
- db:seed: Run a seeder
- routes: List registered routes
- view:clear: Remove compiled views
"""

from maniac.cli.main import cli, main

__all__ = ["main", "cli"]

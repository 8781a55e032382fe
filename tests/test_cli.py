"""Tests for the maniac command line."""

import uuid
from pathlib import Path

import pytest

from maniac.cli.commands.routes import extract_routes
from maniac.cli.loader import AppLoadError, load_application
from maniac.cli.main import cli, create_parser

APP_SOURCE = '''
from maniac import Application

app = Application(config={
    "app": {"env": "local"},
    "database": {
        "url": "sqlite:///app.sqlite",
        "migrations": "migrations",
        "seeders": "seeders",
    },
})

app.get("/", lambda: "home").name("home")
app.post("/posts", lambda: "stored", middleware=["csrf"]).name("posts.store")
'''

SEEDER_SOURCE = '''
from maniac.orm import Seeder


class DatabaseSeeder(Seeder):
    async def run(self):
        await self.connection.execute("CREATE TABLE seeded (id INTEGER PRIMARY KEY)")
'''


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> str:
    """An application module in a temporary working directory; returns ``module:attribute``."""
    module = f"cliapp_{uuid.uuid4().hex}"
    (tmp_path / f"{module}.py").write_text(APP_SOURCE)
    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))
    return f"{module}:app"


class TestParser:
    def test_rollback_steps(self):
        args = create_parser().parse_args(["migrate:rollback", "--steps", "3"])
        assert args.steps == 3

    def test_seed_class_option(self):
        args = create_parser().parse_args(["db:seed", "--class", "UsersSeeder", "--force"])
        assert (args.seeder, args.force) == ("UsersSeeder", True)

    def test_create_and_table_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["make:migration", "x", "--create", "a", "--table", "b"])

    def test_no_command_prints_help(self, capsys):
        assert cli([]) == 0
        assert "Maniac Framework CLI" in capsys.readouterr().out


class TestLoader:
    def test_loads_application(self, project):
        app = load_application(project)
        assert app.router.named("home").uri == "/"

    def test_missing_module(self, project):
        with pytest.raises(AppLoadError, match="Could not import"):
            load_application("no_such_module_here:app")

    def test_missing_attribute(self, project):
        module = project.split(":")[0]
        with pytest.raises(AppLoadError, match="no attribute"):
            load_application(f"{module}:missing")

    def test_cli_reports_load_errors(self, project, capsys):
        assert cli(["--app", "no_such_module_here:app", "routes"]) == 1
        assert "Could not import" in capsys.readouterr().err


class TestCommands:
    def test_routes(self, project, capsys):
        assert cli(["--app", project, "routes"]) == 0
        out = capsys.readouterr().out
        assert "posts.store" in out
        assert "Total: 2 route(s)" in out

    def test_extract_routes(self, project):
        rows = extract_routes(load_application(project).router)
        assert rows[1][:3] == ("POST", "/posts", "posts.store")
        assert rows[1][4] == "csrf"

    def test_make_migration_then_migrate(self, project, tmp_path, capsys):
        assert cli(["--app", project, "make:migration", "create_posts_table"]) == 0
        created = list((tmp_path / "migrations").glob("*_create_posts_table.py"))
        assert len(created) == 1
        assert 'schema.create("posts"' in created[0].read_text()

        assert cli(["--app", project, "migrate"]) == 0
        assert "Migrated:" in capsys.readouterr().out

        assert cli(["--app", project, "migrate"]) == 0
        assert "Nothing to migrate." in capsys.readouterr().out

        assert cli(["--app", project, "migrate:status"]) == 0
        assert "[batch 1]" in capsys.readouterr().out

        assert cli(["--app", project, "migrate:rollback"]) == 0
        assert "Rolled back:" in capsys.readouterr().out

    def test_make_update_migration(self, project, tmp_path):
        assert cli(["--app", project, "make:migration", "add_votes_to_posts_table"]) == 0
        created = next((tmp_path / "migrations").glob("*_add_votes_to_posts_table.py"))
        assert '"posts"' in created.read_text()

    def test_seed(self, project, tmp_path, capsys):
        (tmp_path / "seeders").mkdir()
        (tmp_path / "seeders" / "database_seeder.py").write_text(SEEDER_SOURCE)
        assert cli(["--app", project, "db:seed"]) == 0
        assert "Seeding completed" in capsys.readouterr().out

    def test_unknown_seeder(self, project, capsys):
        assert cli(["--app", project, "db:seed", "--class", "Missing"]) == 1
        assert "Missing not found" in capsys.readouterr().err

    def test_view_clear(self, project, tmp_path, capsys):
        cache = tmp_path / "storage" / "views"
        cache.mkdir(parents=True)
        (cache / "compiled.py").write_text("")
        assert cli(["--app", project, "view:clear"]) == 0
        assert "(1 file(s))" in capsys.readouterr().out
        assert not (cache / "compiled.py").exists()

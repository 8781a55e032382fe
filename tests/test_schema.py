"""Tests for Blueprint DDL generation and the Schema runner."""

import pytest

from maniac.orm import Blueprint, DatabaseDriver, Schema, SchemaError
from maniac.orm.schema import PostgresGrammar, SQLiteGrammar
from tests.conftest import FakeConnection


class TestMySqlBlueprint:
    def test_id_and_unique_name(self):
        table = Blueprint("t")
        table.id().string("name").unique()

        assert table.to_create_sql() == [
            "CREATE TABLE `t` (`id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT, "
            "`name` VARCHAR(255) NOT NULL, PRIMARY KEY (`id`), "
            "UNIQUE `t_name_unique` (`name`)) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
        ]

    def test_column_types(self):
        table = Blueprint("products")
        table.decimal("price", 10, 4)
        table.enum("status", ["draft", "live"])
        table.text("body").nullable()
        table.integer("stock", unsigned=True).default(0)
        sql = table.to_create_sql()[0]

        assert "`price` DECIMAL(10,4) NOT NULL" in sql
        assert "`status` ENUM('draft','live') NOT NULL" in sql
        assert "`body` TEXT NULL" in sql
        assert "`stock` INT UNSIGNED NOT NULL DEFAULT 0" in sql

    def test_boolean_default_becomes_integer(self):
        table = Blueprint("users")
        column = table.boolean("active").default(True)
        assert column.default_value == 1
        assert "`active` TINYINT(1) NOT NULL DEFAULT 1" in table.to_create_sql()[0]

    def test_string_default_is_quoted(self):
        table = Blueprint("users")
        table.string("role").default("o'neil")
        assert "DEFAULT 'o''neil'" in table.to_create_sql()[0]

    def test_timestamps_are_nullable(self):
        table = Blueprint("users")
        table.timestamps()
        sql = table.to_create_sql()[0]
        assert "`created_at` TIMESTAMP NULL" in sql
        assert "`updated_at` TIMESTAMP NULL" in sql

    def test_modifiers_apply_to_their_own_column(self):
        table = Blueprint("users")
        email = table.string("email")
        table.string("name")
        email.nullable().index()

        assert email.is_nullable
        assert not table.columns[1].is_nullable
        assert table.indexes[0].name == "users_email_index"

    def test_composite_index(self):
        table = Blueprint("posts")
        table.index(["user_id", "created_at"])
        assert table.indexes[0].name == "posts_user_id_created_at_index"

    def test_foreign_key(self):
        table = Blueprint("posts")
        table.big_integer("user_id", unsigned=True)
        table.foreign("user_id").references("id", "users").on_delete("cascade")
        assert table.to_create_sql()[0].endswith(
            "CONSTRAINT `fk_users_user_id` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`) "
            "ON DELETE CASCADE) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
        )

    def test_fulltext_skipped_on_old_innodb(self):
        table = Blueprint("posts")
        table.text("body").full_text()
        assert "FULLTEXT" not in table.to_create_sql(server_version="5.5.62")[0]
        assert "FULLTEXT `posts_body_fulltext` (`body`)" in table.to_create_sql(server_version="8.0.36")[0]

    def test_fulltext_kept_on_myisam(self):
        table = Blueprint("posts").engine("MyISAM")
        table.text("body").full_text()
        sql = table.to_create_sql(server_version="5.5.62")[0]
        assert "FULLTEXT" in sql
        assert sql.endswith("ENGINE=MyISAM DEFAULT CHARSET=utf8mb4")

    def test_alter(self):
        table = Blueprint("users")
        table.string("nickname").nullable()
        table.index("nickname")
        assert table.to_alter_sql() == [
            "ALTER TABLE `users` ADD `nickname` VARCHAR(255) NULL, "
            "ADD INDEX `users_nickname_index` (`nickname`)"
        ]


class TestOtherDialects:
    def test_sqlite_create(self):
        table = Blueprint("t")
        table.id().string("name").unique()
        assert table.to_create_sql(SQLiteGrammar()) == [
            'CREATE TABLE "t" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "name" VARCHAR(255) NOT NULL)',
            'CREATE UNIQUE INDEX "t_name_unique" ON "t" ("name")',
        ]

    def test_sqlite_enum_uses_check(self):
        table = Blueprint("t")
        table.enum("status", ["a", "b"])
        assert "CHECK (\"status\" IN ('a', 'b'))" in table.to_create_sql(SQLiteGrammar())[0]

    def test_postgres_types(self):
        table = Blueprint("t")
        table.id()
        table.boolean("active").default(True)
        table.datetime("seen_at").nullable()
        sql = table.to_create_sql(PostgresGrammar())[0]
        assert '"id" BIGSERIAL NOT NULL' in sql
        assert '"active" BOOLEAN NOT NULL DEFAULT TRUE' in sql
        assert '"seen_at" TIMESTAMP NULL' in sql
        assert 'PRIMARY KEY ("id")' in sql


class TestSchema:
    @pytest.mark.asyncio
    async def test_create_runs_statement(self):
        conn = FakeConnection()
        await Schema(conn).create("t", lambda t: t.id().string("name").unique())
        assert conn.sql[0].startswith("CREATE TABLE `t`")

    @pytest.mark.asyncio
    async def test_blueprint_runs_once(self):
        conn = FakeConnection()
        schema = Schema(conn)
        blueprint = await schema.create("t", lambda t: t.id())
        with pytest.raises(SchemaError, match="already been executed"):
            await schema._run(blueprint, ["SELECT 1"], "create")

    @pytest.mark.asyncio
    async def test_fulltext_uses_server_version(self):
        conn = FakeConnection(version="5.5.0")
        await Schema(conn).create("posts", lambda t: t.text("body").full_text())
        assert "FULLTEXT" not in conn.sql[0]

    @pytest.mark.asyncio
    async def test_drop_if_exists(self):
        conn = FakeConnection()
        await Schema(conn).drop_if_exists("users")
        assert conn.sql == ["DROP TABLE IF EXISTS `users`"]

    @pytest.mark.asyncio
    async def test_failure_is_wrapped(self, db):
        schema = Schema(db)
        await schema.create("users", lambda t: t.id())
        with pytest.raises(SchemaError, match="Failed to create table 'users'"):
            await schema.create("users", lambda t: t.id())

    @pytest.mark.asyncio
    async def test_has_table_and_column(self, db):
        schema = Schema(db)
        assert not await schema.has_table("users")
        await schema.create("users", lambda t: t.id().string("email"))
        assert await schema.has_table("users")
        assert await schema.has_column("users", "email")
        assert not await schema.has_column("users", "name")

        await schema.table("users", lambda t: t.string("name").nullable())
        assert await schema.has_column("users", "name")

        await schema.rename("users", "members")
        assert await schema.has_table("members")
        await schema.drop("members")
        assert not await schema.has_table("members")

    def test_grammar_follows_driver(self):
        assert isinstance(Schema(FakeConnection(DatabaseDriver.SQLITE)).grammar, SQLiteGrammar)

"""Tests for the Model base class against an in-memory SQLite database."""

import pytest

from maniac.core.request import Request, current_request
from maniac.orm import Attribute, Model, ModelNotFoundError, NotFillableError, Schema
from tests.conftest import FakeConnection


class User(Model):
    fillable = ["name", "email", "role_id"]

    name = Attribute(get=lambda value: value.title() if value else value)
    email = Attribute(set=lambda value: value.lower())

    async def posts(self):
        return await self.has_many(Post)

    async def role(self):
        return await self.belongs_to(Role)

    async def groups(self):
        return await self.belongs_to_many(Group)


class Post(Model):
    fillable = ["title", "user_id"]


class Role(Model):
    fillable = ["name"]


class Group(Model):
    fillable = ["name"]


class Setting(Model):
    __table_name__ = "app_settings"


@pytest.fixture
async def tables(db):
    schema = Schema(db)
    await schema.create("roles", lambda t: t.id().string("name"))
    await schema.create("users", lambda t: (
        t.id(),
        t.string("name"),
        t.string("email").unique(),
        t.integer("role_id").nullable(),
        t.integer("votes").default(0),
    ))
    await schema.create("posts", lambda t: t.id().string("title").integer("user_id"))
    await schema.create("groups", lambda t: t.id().string("name"))
    await schema.create("group_user", lambda t: t.integer("group_id").integer("user_id"))
    return db


class TestAttributes:
    def test_table_name_inferred(self):
        assert User.__table_name__ == "users"
        assert Setting.__table_name__ == "app_settings"

    def test_fill_skips_non_fillable(self):
        user = User({"name": "ada", "password": "x"})
        assert "password" not in user
        assert user.name == "Ada"

    def test_direct_assignment_of_non_fillable_fails(self):
        user = User()
        with pytest.raises(NotFillableError):
            user.password = "x"

    def test_empty_fillable_is_unrestricted(self):
        setting = Setting({"key": "theme", "value": "dark"})
        setting.extra = 1
        assert setting.to_dict() == {"key": "theme", "value": "dark", "extra": 1}

    def test_mutator_applies_on_assignment(self):
        user = User()
        user.email = "ADA@Example.COM"
        assert user.email == "ada@example.com"

    def test_dirty_tracking(self):
        user = User.hydrate([{"id": 1, "name": "ada", "email": "a@x"}])[0]
        assert user.exists
        assert not user.is_dirty()
        user.name = "grace"
        assert user.get_dirty() == {"name": "grace"}


class TestPersistence:
    @pytest.mark.asyncio
    async def test_hydrated_save_issues_no_sql(self):
        conn = FakeConnection()
        User.use(conn)
        try:
            user = User.hydrate([{"id": 1, "name": "ada", "email": "a@x"}])[0]
            assert await user.save() is True
            assert conn.statements == []
        finally:
            del User._database

    @pytest.mark.asyncio
    async def test_update_sends_only_dirty_columns(self):
        conn = FakeConnection()
        User.use(conn)
        try:
            user = User.hydrate([{"id": 7, "name": "ada", "email": "a@x"}])[0]
            user.name = "grace"
            await user.save()
            assert conn.sql == ["UPDATE users SET name = :update_name WHERE id = :where_0"]
            assert not user.is_dirty()
        finally:
            del User._database

    @pytest.mark.asyncio
    async def test_create_and_find(self, tables):
        user = await User.create({"name": "ada", "email": "ADA@example.com"})
        assert user.exists
        assert user.id == 1

        found = await User.find(1)
        assert found == user
        assert found.email == "ada@example.com"
        assert not found.is_dirty()

    @pytest.mark.asyncio
    async def test_find_or_fail(self, tables):
        with pytest.raises(ModelNotFoundError, match="User with ID 99 not found"):
            await User.find_or_fail(99)

    @pytest.mark.asyncio
    async def test_delete(self, tables):
        user = await User.create({"name": "ada", "email": "a@x"})
        assert await user.delete()
        assert not user.exists
        assert await User.find(user.id) is None

    @pytest.mark.asyncio
    async def test_where_and_count(self, tables):
        await User.insert_many([
            {"name": "a", "email": "a@x"},
            {"name": "b", "email": "b@x"},
            {"name": "c", "email": "c@x"},
        ])
        assert await User.where("name", "!=", "a").count() == 2
        assert [u.email for u in await User.where_like("email", "b").get()] == ["b@x"]

    @pytest.mark.asyncio
    async def test_paginate(self, tables):
        await User.insert_many([{"name": str(i), "email": f"{i}@x"} for i in range(5)])
        page = await User.paginate(per_page=2, page=3)
        assert page.total == 5
        assert page.last_page == 3
        assert len(page.data) == 1
        assert isinstance(page.data[0], User)

    @pytest.mark.asyncio
    async def test_paginate_reads_page_from_current_request(self, tables):
        await User.insert_many([{"name": str(i), "email": f"{i}@x"} for i in range(5)])
        token = current_request.set(Request({"type": "http", "method": "GET", "path": "/users", "query_string": b"page=2"}))
        try:
            page = await User.paginate(per_page=2)
        finally:
            current_request.reset(token)

        assert page.current_page == 2
        assert [u.email for u in page.data] == ["2@x", "3@x"]

    @pytest.mark.asyncio
    async def test_first_or_create(self, tables):
        first = await User.first_or_create({"email": "a@x"}, {"name": "ada"})
        again = await User.first_or_create({"email": "a@x"}, {"name": "other"})
        assert first.id == again.id
        assert again.name == "Ada"

    @pytest.mark.asyncio
    async def test_update_or_create(self, tables):
        await User.create({"name": "ada", "email": "a@x"})
        user = await User.update_or_create({"email": "a@x"}, {"name": "grace"})
        assert (await User.find(user.id)).name == "Grace"

    @pytest.mark.asyncio
    async def test_first_or_new_does_not_save(self, tables):
        user = await User.first_or_new({"email": "n@x"})
        assert not user.exists
        assert await User.query().count() == 0

    @pytest.mark.asyncio
    async def test_increment_applies_to_table(self, tables):
        await User.insert_many([{"name": "a", "email": "a@x"}, {"name": "b", "email": "b@x"}])
        await User.increment("votes", 2)
        assert await User.pluck("votes") == [2, 2]

    @pytest.mark.asyncio
    async def test_refresh(self, tables):
        user = await User.create({"name": "ada", "email": "a@x"})
        await User.update_by_id(user.id, {"name": "grace"})
        await user.refresh()
        assert user.name == "Grace"

    @pytest.mark.asyncio
    async def test_update_by_id_only_writes_fillable_columns(self, tables):
        user = await User.create({"name": "ada", "email": "a@x"})
        assert await User.update_by_id(user.id, {"name": "grace", "email": "G@X", "votes": 9})

        row = await tables.fetch_one("SELECT name, email, votes FROM users WHERE id = :id", {"id": user.id})
        assert (row["name"], row["email"], row["votes"]) == ("grace", "g@x", 0)

    @pytest.mark.asyncio
    async def test_update_by_id_missing_row(self, tables):
        assert await User.update_by_id(404, {"name": "nobody"}) is False

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self, tables):
        with pytest.raises(RuntimeError):
            async with tables.transaction() as conn:
                await conn.table("users").insert({"name": "a", "email": "a@x"})
                raise RuntimeError("boom")
        assert await User.query().count() == 0


class TestRelations:
    @pytest.mark.asyncio
    async def test_has_many_and_belongs_to(self, tables):
        role = await Role.create({"name": "admin"})
        user = await User.create({"name": "ada", "email": "a@x", "role_id": role.id})
        await Post.create({"title": "One", "user_id": user.id})
        await Post.create({"title": "Two", "user_id": user.id})

        posts = await user.posts()
        assert [p.title for p in posts] == ["One", "Two"]
        assert (await user.role()) == role

    @pytest.mark.asyncio
    async def test_belongs_to_many(self, tables):
        user = await User.create({"name": "ada", "email": "a@x"})
        group = await Group.create({"name": "writers"})
        await Group.create({"name": "readers"})
        await tables.table("group_user").insert({"group_id": group.id, "user_id": user.id})

        groups = await user.groups()
        assert [g.name for g in groups] == ["writers"]

"""
Tests for the database URL handling shared by the app engine and migrations.
"""

import pytest

from recycletrade.database.connection import async_database_url


class TestAsyncDatabaseUrl:
    def test_plain_postgres_url_gets_asyncpg_driver(self):
        url = "postgresql://user:secret@db:5432/recycletrade"

        assert async_database_url(url) == "postgresql+asyncpg://user:secret@db:5432/recycletrade"

    @pytest.mark.parametrize(
        "url",
        [
            "postgresql+asyncpg://user@db/recycletrade",
            "sqlite+aiosqlite:///:memory:",
        ],
    )
    def test_async_urls_are_left_alone(self, url):
        assert async_database_url(url) == url

    def test_only_the_scheme_is_rewritten(self):
        url = "postgresql://user@db/postgresql://mirror"

        assert async_database_url(url) == "postgresql+asyncpg://user@db/postgresql://mirror"

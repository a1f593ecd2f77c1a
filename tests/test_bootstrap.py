import asyncio

import pytest

from core.bootstrap import bootstrap, find_allowed_user
from core.errors import Unauthorized


def test_identity_match_is_trimmed_and_case_insensitive(session_maker):
    async def main():
        async with session_maker() as db:
            return await find_allowed_user(db, "  DANA@example.COM")

    assert asyncio.run(main()).name == "Dana"


def test_blank_identity_matches_nobody(session_maker):
    async def main():
        async with session_maker() as db:
            return await find_allowed_user(db, "   ")

    assert asyncio.run(main()) is None


def test_bootstrap_payload(session_maker, catalog):
    async def main():
        async with session_maker() as db:
            return await bootstrap(db, catalog, "lee@example.com")

    data = asyncio.run(main())
    assert data["success"] is True
    assert data["user"] == {"email": "lee@example.com", "name": None, "default_location": None}
    assert [loc["code"] for loc in data["locations"]] == ["WA", "WB"]
    assert [item["code"] for item in data["items"]] == ["BK-001", "BK-002", "TT-9"]


def test_unauthorized_reads_no_catalog(session_maker, catalog, monkeypatch):
    async def fail(*args, **kwargs):
        raise AssertionError("catalog read for an unauthorized identity")

    monkeypatch.setattr(catalog, "list_locations", fail)
    monkeypatch.setattr(catalog, "all_items", fail)

    async def main():
        async with session_maker() as db:
            return await bootstrap(db, catalog, "stranger@example.com")

    with pytest.raises(Unauthorized) as exc:
        asyncio.run(main())
    assert exc.value.blocking

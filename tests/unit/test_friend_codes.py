"""Unit tests for friend code generation."""

import string

import pytest

from esko.rewards.friend_codes import (
    FRIEND_CODE_CHARSET,
    FRIEND_CODE_LENGTH,
    generate_friend_code,
    generate_unique_friend_code,
    is_well_formed,
    normalize_friend_code,
)
from esko.stores.memory import MemoryRewardStore


class TestFriendCodes:
    """Test friend code generation."""

    def test_code_is_8_chars(self):
        assert len(generate_friend_code()) == FRIEND_CODE_LENGTH == 8

    def test_code_is_alphanumeric_uppercase(self):
        code = generate_friend_code()
        assert all(c in string.ascii_uppercase + string.digits for c in code)

    def test_codes_are_unique(self):
        codes = {generate_friend_code() for _ in range(1000)}
        assert len(codes) == 1000

    def test_charset(self):
        assert FRIEND_CODE_CHARSET == string.ascii_uppercase + string.digits

    def test_normalize(self):
        assert normalize_friend_code("  abc12345 ") == "ABC12345"

    @pytest.mark.parametrize(
        ("code", "ok"),
        [("ABC12345", True), ("abc12345", True), ("ABC1234", False), ("ABC12345X", False), ("ABC_2345", False)],
    )
    def test_well_formed(self, code, ok):
        assert is_well_formed(code) is ok


class TestUniqueFriendCode:
    @pytest.mark.asyncio
    async def test_avoids_taken_codes(self, monkeypatch):
        store = MemoryRewardStore()
        await store.create_user("alice", friend_code="TAKEN001")
        candidates = iter(["TAKEN001", "FRESH002"])
        monkeypatch.setattr("esko.rewards.friend_codes.generate_friend_code", lambda: next(candidates))
        assert await generate_unique_friend_code(store) == "FRESH002"

    @pytest.mark.asyncio
    async def test_gives_up_after_ten_collisions(self, monkeypatch):
        store = MemoryRewardStore()
        await store.create_user("alice", friend_code="TAKEN001")
        monkeypatch.setattr("esko.rewards.friend_codes.generate_friend_code", lambda: "TAKEN001")
        with pytest.raises(RuntimeError):
            await generate_unique_friend_code(store)

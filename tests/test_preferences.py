"""Tests for preference flags and prompt policies."""

from datetime import timedelta

import pytest

from inphrone.services.preferences import session_owner, user_owner


@pytest.mark.asyncio
async def test_store_expiry(services, clock):
    """Test that expired values read as absent."""
    store = services.preferences

    await store.set(user_owner("alice"), "theme", {"dark": True}, ttl=timedelta(minutes=5))
    assert await store.get(user_owner("alice"), "theme") == {"dark": True}

    clock.advance(minutes=6)
    assert await store.get(user_owner("alice"), "theme") is None

    await store.set(user_owner("alice"), "theme", "light")
    await store.delete(user_owner("alice"), "theme")
    assert await store.get(user_owner("alice"), "theme") is None


@pytest.mark.asyncio
async def test_push_prompt_once_per_session(services):
    """Test that the prompt shows once per browser session."""
    policy = services.push_prompt

    assert await policy.should_show("alice", "s1", True, "default", False) is True
    assert await policy.should_show("alice", "s1", True, "default", False) is False
    assert await policy.should_show("alice", "s2", True, "default", False) is True
    assert await services.preferences.get(session_owner("s1"), policy.SHOWN) is True


@pytest.mark.asyncio
async def test_push_prompt_suppressed(services):
    """Test unsupported browsers, denied permission and existing subscriptions."""
    policy = services.push_prompt

    assert await policy.should_show("alice", "s1", False, "default", False) is False
    assert await policy.should_show("alice", "s1", True, "denied", False) is False
    assert await policy.should_show("alice", "s1", True, "granted", True) is False
    assert await policy.should_show("alice", "s2", True, "default", False) is False

    await policy.disable("alice")
    assert await policy.should_show("alice", "s3", True, "default", False) is True


@pytest.mark.asyncio
async def test_push_prompt_dismiss_cooldown(services, clock):
    """Test that a dismissal hides the prompt for a week."""
    policy = services.push_prompt
    await policy.dismiss("alice")

    clock.advance(days=6)
    assert await policy.should_show("alice", "s1", True, "default", False) is False

    clock.advance(days=2)
    assert await policy.should_show("alice", "s1", True, "default", False) is True


@pytest.mark.asyncio
async def test_email_banner(services, clock):
    """Test the verification banner cooldown."""
    policy = services.email_banner

    assert await policy.should_show("alice", email_verified=True) is False
    assert await policy.should_show("alice", email_verified=False) is True

    await policy.dismiss("alice")
    assert await policy.should_show("alice", email_verified=False) is False

    clock.advance(hours=1, seconds=1)
    assert await policy.should_show("alice", email_verified=False) is True


@pytest.mark.asyncio
async def test_session_flag_expires(services, clock):
    """Test that a session's shown flag lapses after a day and the row can be purged."""
    policy = services.push_prompt

    assert await policy.should_show("alice", "s1", True, "default", False) is True
    clock.advance(hours=25)

    assert await services.preferences.purge_expired() == 1
    assert await services.preferences.get(session_owner("s1"), policy.SHOWN) is None
    assert await policy.should_show("alice", "s1", True, "default", False) is True


@pytest.mark.asyncio
async def test_purge_keeps_live_and_permanent_values(services, clock):
    """Test that purging drops only values past their expiry."""
    store = services.preferences
    await store.set(user_owner("alice"), "banner", True, ttl=timedelta(minutes=5))
    await store.set(user_owner("alice"), "cooldown", True, ttl=timedelta(days=3))
    await store.set(user_owner("alice"), "theme", "dark")

    clock.advance(minutes=10)

    assert await store.purge_expired() == 1
    assert await store.purge_expired() == 0
    assert await store.get(user_owner("alice"), "cooldown") is True
    assert await store.get(user_owner("alice"), "theme") == "dark"

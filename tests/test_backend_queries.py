import asyncio

import pytest

from src.forms.validation import FormValidationError
from src.integrations.contracts.interfaces import InsuranceType, UserProfile, UserRole
from src.integrations.identity import Identity
from src.services.backend_health import HEALTH_KEY, BackendHealthMonitor, HealthStatus
from src.services.queries import (
    ALL_FORMS,
    CURRENT_USER_PROFILE,
    IS_ADMIN,
    BackendQueries,
    all_forms_retry_delay,
    primary_admin_retry_delay,
)
from src.utils.log_once import log_once
from src.utils.principal import Principal


def _identity(seed: bytes) -> Identity:
    return Identity(principal=Principal.self_authenticating(seed), delegation_token=seed.decode())


def _queries(query_client, actor_factory, health, seed=None):
    identity = _identity(seed) if seed else None
    return BackendQueries(query_client, actor_factory(identity), health=health)


def _make_admin(canister, seed: bytes) -> Principal:
    principal = Principal.self_authenticating(seed)
    canister.roles[principal] = UserRole.ADMIN
    return principal


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_status_follows_last_check(health, canister, query_client):
    assert health.status == HealthStatus.ERROR

    assert await health.check() == HealthStatus.OK
    assert query_client.get_query_data(HEALTH_KEY) is True

    canister.available = False
    assert await health.check(force=True) == HealthStatus.UNREACHABLE
    # the earlier check, then one attempt plus two retries
    assert canister.calls["get_app_settings"] == 1 + 3


@pytest.mark.asyncio
async def test_health_check_uses_cached_result_while_fresh(health, canister):
    await health.check()
    await health.check()
    assert canister.calls["get_app_settings"] == 1


@pytest.mark.asyncio
async def test_health_monitor_polls_in_background(query_client, actor_factory, canister):
    monitor = BackendHealthMonitor(query_client, actor_factory.anonymous, interval_seconds=0.01)
    monitor.start()
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert canister.calls["get_app_settings"] >= 2
    assert monitor.status == HealthStatus.OK


@pytest.mark.asyncio
async def test_reads_are_not_retried_while_backend_unreachable(query_client, actor_factory, health, canister):
    _make_admin(canister, b"admin")
    queries = _queries(query_client, actor_factory, health, b"admin")

    canister.available = False
    assert await health.check() == HealthStatus.UNREACHABLE
    canister.calls.clear()

    with pytest.raises(ConnectionError):
        await queries.get_all_forms()
    assert canister.calls["get_all_forms"] == 1


@pytest.mark.asyncio
async def test_reads_retry_when_backend_was_reachable(query_client, actor_factory, health, canister, sleep):
    _make_admin(canister, b"admin")
    queries = _queries(query_client, actor_factory, health, b"admin")
    await health.check()
    sleep.delays.clear()

    canister.available = False
    with pytest.raises(ConnectionError):
        await queries.get_all_forms()
    assert canister.calls["get_all_forms"] == 4
    assert sleep.delays == [1.0, 2.0, 3.0]


def test_retry_delay_helpers_are_capped():
    err = RuntimeError()
    assert [primary_admin_retry_delay(i, err) for i in range(5)] == [0.5, 1.0, 1.5, 2.0, 2.0]
    assert [all_forms_retry_delay(i, err) for i in range(4)] == [1.0, 2.0, 3.0, 3.0]


# ---------------------------------------------------------------------------
# Admin status
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_is_caller_admin_returns_false_on_error(query_client, actor_factory, health, canister):
    queries = _queries(query_client, actor_factory, health, b"someone")
    canister.available = False

    assert await queries.is_caller_admin() is False


@pytest.mark.asyncio
async def test_forget_caller_drops_only_that_callers_entries(query_client, actor_factory, health, canister):
    mine = _queries(query_client, actor_factory, health, b"leaving")
    other = _queries(query_client, actor_factory, health, b"staying")
    canister.available = False
    assert await mine.is_caller_admin() is False
    assert await other.is_caller_admin() is False

    mine.forget_caller()

    assert query_client.get_query_state((IS_ADMIN, mine.principal_text)) is None
    assert query_client.get_query_state((IS_ADMIN, other.principal_text)) is not None
    # the next failure for this caller is logged again, the other caller's stays suppressed
    assert log_once(mine.admin_status_log_key, "Error checking admin status") is True
    assert log_once(other.admin_status_log_key, "Error checking admin status") is False


@pytest.mark.asyncio
async def test_strict_primary_admin_check_propagates_errors(query_client, actor_factory, health, canister):
    queries = _queries(query_client, actor_factory, health, b"someone")
    canister.available = False

    assert await queries.is_primary_admin() is False
    with pytest.raises(ConnectionError):
        await queries.is_primary_admin(strict=True)


@pytest.mark.asyncio
async def test_create_first_admin_bootstraps_only_once(query_client, actor_factory, health, canister):
    first = _queries(query_client, actor_factory, health, b"first")
    second = _queries(query_client, actor_factory, health, b"second")

    await first.create_first_admin()
    await second.create_first_admin()

    assert await first.is_primary_admin(strict=True) is True
    assert await second.is_primary_admin(strict=True) is False
    assert canister.admins() == [first.actor.caller]


@pytest.mark.asyncio
async def test_admin_password_login(query_client, actor_factory, health):
    queries = _queries(query_client, actor_factory, health, b"pw")

    assert await queries.admin_login_with_password("wrong") is False
    assert await queries.admin_login_with_password("s3cret-admin") is True
    assert await queries.is_caller_admin() is True


# ---------------------------------------------------------------------------
# Profile (optimistic save)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_save_profile_keeps_optimistic_value_on_success(query_client, actor_factory, health, canister):
    queries = _queries(query_client, actor_factory, health, b"profile")
    key = (CURRENT_USER_PROFILE, queries.principal_text)
    profile = UserProfile(name="Asha Rao", email="asha@example.com", role="Administrator")

    saved = await queries.save_caller_user_profile(profile)

    assert saved == profile
    assert query_client.get_query_data(key) == profile
    assert query_client.get_query_state(key).is_invalidated is True
    assert canister.profiles[queries.actor.caller] == profile
    assert [t.title for t in queries.toaster.toasts] == ["Profile saved successfully!"]
    assert await queries.get_caller_user_profile() == profile


@pytest.mark.asyncio
async def test_save_profile_rolls_back_to_previous_value(query_client, actor_factory, health, canister):
    queries = _queries(query_client, actor_factory, health, b"rollback")
    key = (CURRENT_USER_PROFILE, queries.principal_text)
    previous = UserProfile(name="Old", email="old@example.com", role="Administrator")
    query_client.set_query_data(key, previous)

    canister.available = False
    with pytest.raises(ConnectionError):
        await queries.save_caller_user_profile(UserProfile(name="New", email="new@example.com", role="Administrator"))

    assert query_client.get_query_data(key) == previous
    assert queries.toaster.toasts[-1].level == "error"


@pytest.mark.asyncio
async def test_save_profile_removes_entry_when_nothing_was_cached(query_client, actor_factory, health):
    queries = _queries(query_client, actor_factory, health)  # anonymous caller is rejected

    with pytest.raises(Exception):
        await queries.save_caller_user_profile(UserProfile(name="A", email="a@example.com", role="Administrator"))

    assert query_client.get_query_state((CURRENT_USER_PROFILE, queries.principal_text)) is None


@pytest.mark.asyncio
async def test_save_profile_requires_every_field(query_client, actor_factory, health, canister):
    queries = _queries(query_client, actor_factory, health, b"blank")

    with pytest.raises(FormValidationError) as exc:
        await queries.save_caller_user_profile(UserProfile(name="", email="a@example.com", role="Administrator"))
    assert exc.value.field_errors == {"name": "Name is required"}
    assert canister.calls["save_caller_user_profile"] == 0


# ---------------------------------------------------------------------------
# Forms, settings, admins
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_submit_form_invalidates_form_list(query_client, actor_factory, health, canister):
    _make_admin(canister, b"admin")
    admin = _queries(query_client, actor_factory, health, b"admin")
    public = _queries(query_client, actor_factory, health)

    assert await admin.get_all_forms() == []

    await public.submit_form(
        name="Ravi",
        phone="9876543210",
        email="ravi@example.com",
        address="Pune",
        insurance_interests=[InsuranceType.HEALTH],
        feedback="",
        documents=[],
    )

    assert query_client.get_query_state((ALL_FORMS,)).is_invalidated is True
    forms = await admin.get_all_forms()
    assert [f.name for f in forms] == ["Ravi"]
    assert public.toaster.drain()[0]["title"] == "Form submitted successfully! We will contact you soon."


@pytest.mark.asyncio
async def test_submit_form_failure_raises_and_toasts(query_client, actor_factory, health, canister):
    public = _queries(query_client, actor_factory, health)
    canister.available = False

    with pytest.raises(ConnectionError):
        await public.submit_form(
            name="Ravi", phone="", email="ravi@example.com", address="",
            insurance_interests=[], feedback="", documents=[],
        )
    assert public.toaster.toasts[0].title.startswith("Failed to submit form: ")


@pytest.mark.asyncio
async def test_non_admin_cannot_update_settings(query_client, actor_factory, health):
    queries = _queries(query_client, actor_factory, health, b"user")
    settings = await queries.get_app_settings()

    with pytest.raises(Exception) as exc:
        await queries.update_app_settings(settings)
    assert "Unauthorized" in str(exc.value)
    assert queries.toaster.toasts[0].level == "error"


@pytest.mark.asyncio
async def test_add_and_remove_admin(query_client, actor_factory, health, canister):
    _make_admin(canister, b"admin")
    admin = _queries(query_client, actor_factory, health, b"admin")
    other = Principal.self_authenticating(b"other")

    await admin.add_admin(other)
    assert other in await admin.list_admins()

    await admin.remove_admin(other)
    assert other not in await admin.list_admins()
    assert canister.roles[other] == UserRole.USER
    assert [t["title"] for t in admin.toaster.drain()] == ["Admin added successfully", "Admin removed successfully"]


@pytest.mark.asyncio
async def test_visitor_counter(query_client, actor_factory, health):
    public = _queries(query_client, actor_factory, health)
    assert await public.get_visitor_count() == 0

    await public.record_visitor()
    await public.record_visitor()
    assert await public.get_visitor_count() == 2

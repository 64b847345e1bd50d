from datetime import datetime

import pytest

from ladder.config import Config
from ladder.database.models import SeasonStatus
from ladder.utils.exceptions import NotAuthorizedError, NotFoundError, ValidationError


async def test_admin_membership(admin_ops, admin, make_players):
    player, = await make_players(1)

    assert await admin_ops.is_admin(admin.id)
    assert not await admin_ops.is_admin(player.id)
    assert not await admin_ops.is_admin(None)
    assert (await admin_ops.require_admin(admin.id)).user_id == admin.id
    with pytest.raises(NotAuthorizedError):
        await admin_ops.require_admin(player.id)


async def test_grant_admin(admin_ops, admin, make_players):
    first, second = await make_players(2)

    with pytest.raises(NotAuthorizedError):
        await admin_ops.grant_admin(second.id, granted_by=first.id)

    granted = await admin_ops.grant_admin(first.id, granted_by=admin.id)
    again = await admin_ops.grant_admin(first.id, granted_by=admin.id)
    assert granted.id == again.id
    assert await admin_ops.is_admin(first.id)

    with pytest.raises(NotFoundError):
        await admin_ops.grant_admin(9999)


async def test_owner_is_always_admin(admin_ops, make_players, monkeypatch):
    owner, = await make_players(1, prefix="owner")
    monkeypatch.setattr(Config, "OWNER_USER_ID", owner.id)

    assert await admin_ops.is_admin(owner.id)
    assert await admin_ops.require_admin(owner.id) is None


async def test_service_reports_admin_flag(service, admin, make_players):
    player, = await make_players(1)
    assert (await service.is_admin(admin.id)).data is True
    assert (await service.is_admin(player.id)).data is False


async def test_create_season_validation(season_ops, admin, make_players):
    player, = await make_players(1)

    with pytest.raises(ValidationError):
        await season_ops.create_season(admin.id, "  ", datetime(2025, 1, 1))
    with pytest.raises(ValidationError):
        await season_ops.create_season(admin.id, "Backwards", datetime(2025, 6, 1), datetime(2025, 1, 1))
    with pytest.raises(ValidationError):
        await season_ops.create_season(admin.id, "Greedy", datetime(2025, 1, 1), wildcards_per_player=-1)
    with pytest.raises(NotAuthorizedError):
        await season_ops.create_season(player.id, "Rogue", datetime(2025, 1, 1))

    created = await season_ops.create_season(admin.id, " Winter ", datetime(2025, 1, 1))
    assert created.name == "Winter"
    assert created.is_active is False
    assert created.status == SeasonStatus.ACTIVE
    assert created.wildcards_per_player == Config.WILDCARDS_PER_PLAYER


async def test_activating_one_season_deactivates_others(season_ops, season, admin):
    assert (await season_ops.get_active_season()).id == season.id

    other = await season_ops.create_season(admin.id, "Autumn 2025", datetime(2025, 9, 1))
    await season_ops.activate_season(admin.id, other.id)

    assert (await season_ops.get_active_season()).id == other.id
    assert (await season_ops.get_season(season.id)).is_active is False

    await season_ops.activate_season(admin.id, other.id, active=False)
    assert await season_ops.get_active_season() is None


async def test_unknown_season(season_ops, admin):
    with pytest.raises(NotFoundError):
        await season_ops.get_season(404)
    with pytest.raises(NotFoundError):
        await season_ops.activate_season(admin.id, 404)

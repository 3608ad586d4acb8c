"""Tests for the allocation engine (manual + automatic) and its read views."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch
from app.models.allocation import Allocation, OPEN_STATUSES
from app.models.bay import Bay
from app.models.bus import Bus
from app.services.allocation_service import (
    assign_bay, auto_assign, get_parking_instruction, list_bays,
)
from app.services.bus_service import update_preferences
from app.services.identification_service import start_gate_event, identify_primary
from app.services.result import ErrorKind


async def enter(db, plate="SBS001A"):
    await start_gate_event(db, plate, "entry")
    await identify_primary(db, plate)


def bays_consistent(db):
    db.expire_all()
    return all(b.is_available == (b.current_bus_id is None) for b in db.query(Bay).all())


class TestManualAssignment:
    @pytest.mark.asyncio
    async def test_assign_creates_allocation_and_occupies_bay(self, db, bay_by_code):
        bay = bay_by_code("L1-B03")

        result = await assign_bay(db, bay.id, "sbs001a")

        assert result.ok
        assert result.data["priority_reason"] == "manual"
        db.expire_all()
        bus = db.query(Bus).filter(Bus.plate_number == "SBS001A").one()
        allocation = db.get(Allocation, result.data["allocation_id"])
        assert (allocation.status, allocation.wrong_attempts) == ("allocated", 0)
        assert bay_by_code("L1-B03").current_bus_id == bus.id
        assert not bay_by_code("L1-B03").is_available
        assert bays_consistent(db)

    @pytest.mark.asyncio
    async def test_charging_bus_tagged_charging_manual(self, db, bay_by_code):
        await update_preferences(db, "SBS001A", needs_charging=True, needs_maintenance=False)

        result = await assign_bay(db, bay_by_code("L1-B01").id, "SBS001A")

        assert result.data["priority_reason"] == "charging_manual"

    @pytest.mark.asyncio
    async def test_taken_bay_rejected(self, db, bay_by_code):
        bay_id = bay_by_code("L1-A04").id
        await assign_bay(db, bay_id, "AAA111")

        result = await assign_bay(db, bay_id, "BBB222")

        assert result.error == ErrorKind.CONFLICT
        assert result.message == "Bay is no longer available."
        assert db.query(Allocation).count() == 1

    @pytest.mark.asyncio
    async def test_lost_race_rolls_back_allocation(self, db, bay_by_code):
        bay_id = bay_by_code("L1-A04").id

        with patch("app.services.allocation_service.claim_bay", return_value=False):
            result = await assign_bay(db, bay_id, "AAA111")

        assert result.error == ErrorKind.CONFLICT
        assert db.query(Allocation).count() == 0
        assert bay_by_code("L1-A04").is_available

    @pytest.mark.asyncio
    async def test_missing_bay(self, db):
        result = await assign_bay(db, 9999, "SBS001A")
        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_second_open_allocation_rejected(self, db, bay_by_code):
        await assign_bay(db, bay_by_code("L1-A03").id, "SBS001A")

        result = await assign_bay(db, bay_by_code("L1-A04").id, "SBS001A")

        assert result.error == ErrorKind.CONFLICT
        open_count = db.query(Allocation).filter(Allocation.status.in_(OPEN_STATUSES)).count()
        assert open_count == 1
        assert bay_by_code("L1-A04").is_available


class TestAutoAssignment:
    @pytest.mark.asyncio
    async def test_requires_known_bus(self, db):
        result = await auto_assign(db, "GHOST1")

        assert result.error == ErrorKind.NOT_FOUND
        assert "entered the depot" in result.message

    @pytest.mark.asyncio
    async def test_picks_first_free_bay_by_area_and_lot(self, db, bay_by_code):
        await enter(db, "AAA111")
        await enter(db, "BBB222")
        await auto_assign(db, "AAA111")

        result = await auto_assign(db, "BBB222")

        assert result.ok
        assert result.data["bay_code"] == "L1-A02"
        assert result.data["priority_reason"] == "default"

    @pytest.mark.asyncio
    async def test_charging_bus_only_gets_charging_bays(self, db):
        for plate in ("CHG001", "CHG002", "CHG003"):
            await enter(db, plate)
            await update_preferences(db, plate, needs_charging=True, needs_maintenance=False)

        codes = [(await auto_assign(db, p)).data["bay_code"] for p in ("CHG001", "CHG002", "CHG003")]

        # Level 1 has two charging lots; the third goes upstairs
        assert codes == ["L1-A01", "L1-A02", "L2-A01"]

    @pytest.mark.asyncio
    async def test_no_matching_bay(self, db):
        await enter(db)
        await update_preferences(db, "SBS001A", needs_charging=True, needs_maintenance=False)
        db.query(Bay).filter(Bay.is_charging_bay == True).update({Bay.is_available: False})  # noqa: E712
        db.commit()

        result = await auto_assign(db, "SBS001A")

        assert result.error == ErrorKind.NOT_FOUND
        assert result.message == "No free bays available for this bus."


class TestReadViews:
    @pytest.mark.asyncio
    async def test_instruction_for_inside_bus(self, db):
        await enter(db)
        alloc = await auto_assign(db, "SBS001A")

        result = await get_parking_instruction(db, "SBS001A")

        assert result.ok
        assert result.data["allocation_id"] == alloc.data["allocation_id"]
        assert (result.data["level"], result.data["area_code"], result.data["lot_number"]) == (1, "L1A", 1)

    @pytest.mark.asyncio
    async def test_instruction_for_bus_not_inside(self, db, bay_by_code):
        await assign_bay(db, bay_by_code("L1-A01").id, "SBS001A")

        result = await get_parking_instruction(db, "SBS001A")

        assert result.data["bus_status"] == "outside"
        assert "allocation_id" not in result.data

    @pytest.mark.asyncio
    async def test_bay_board_filtered_by_level(self, db):
        await enter(db)
        await auto_assign(db, "SBS001A")

        result = await list_bays(db, level=1)

        bays = result.data["bays"]
        assert len(bays) == 12
        first = bays[0]
        assert first["bay_code"] == "L1-A01"
        assert first["current_plate"] == "SBS001A"
        assert first["latest_allocation_status"] == "allocated"
        assert all(b["level"] == 1 for b in bays)

"""Tests for the movement tracker: checkpoints, level changes, bay moves, read views."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from app.models.bay import Bay
from app.models.bus import Bus
from app.models.bus_position import BusPosition
from app.services.allocation_service import assign_bay, auto_assign
from app.services.gate_session import gate_sessions
from app.services.identification_service import start_gate_event, identify_primary
from app.services.movement_service import (
    record_movement, latest_position, latest_positions, locate_bus,
    move_to_checkpoint, change_level, move_to_allocated_bay, move_to_open_bay,
)
from app.services.result import ErrorKind


async def enter(db, plate="SBS001A"):
    await start_gate_event(db, plate, "entry")
    await identify_primary(db, plate)
    return db.query(Bus).filter(Bus.plate_number == plate).one()


class TestCheckpointMoves:
    @pytest.mark.asyncio
    async def test_move_records_checkpoint_position(self, db, floor_id):
        bus = await enter(db)

        result = await move_to_checkpoint(db, "SBS001A", "CP2")

        assert result.ok
        pos = latest_position(db, bus.id)
        assert pos.source == "checkpoint_cp2"
        assert (pos.floor_id, pos.x, pos.y) == (floor_id(1), 80, 90)

    @pytest.mark.asyncio
    async def test_move_without_session_rejected(self, db):
        result = await move_to_checkpoint(db, "SBS001A", "CP1")

        assert result.error == ErrorKind.NOT_FOUND
        assert db.query(BusPosition).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, db):
        await enter(db)

        result = await move_to_checkpoint(db, "SBS001A", "CP9")

        assert result.error == ErrorKind.NOT_FOUND
        assert "CP9" in result.message

    @pytest.mark.asyncio
    async def test_positions_are_not_validated_against_previous(self, db, floor_id):
        bus = await enter(db)
        record_movement(db, bus.id, floor_id(3), 500, -20, "checkpoint_cp4")
        db.commit()

        assert (latest_position(db, bus.id).x, latest_position(db, bus.id).y) == (500, -20)


class TestLevelChange:
    @pytest.mark.asyncio
    async def test_up_records_ramp_and_changes_level(self, db, floor_id):
        bus = await enter(db)

        result = await change_level(db, "SBS001A", "up")

        assert result.ok
        assert result.data["level"] == 2
        assert gate_sessions.get("SBS001A").level == 2
        pos = latest_position(db, bus.id)
        assert pos.source == "level_up"
        assert pos.floor_id == floor_id(1)

        await move_to_checkpoint(db, "SBS001A", "CP1")
        assert latest_position(db, bus.id).floor_id == floor_id(2)

    @pytest.mark.asyncio
    async def test_down_from_lowest_level_rejected(self, db):
        bus = await enter(db)

        result = await change_level(db, "SBS001A", "down")

        assert result.error == ErrorKind.VALIDATION_FAILED
        assert result.message == "Already at lowest level (1)."
        assert latest_position(db, bus.id).source == "anpr_entry"

    @pytest.mark.asyncio
    async def test_up_past_top_level_rejected(self, db):
        await enter(db)
        for _ in range(3):
            assert (await change_level(db, "SBS001A", "up")).ok

        result = await change_level(db, "SBS001A", "up")

        assert result.error == ErrorKind.VALIDATION_FAILED
        assert result.message == "Already at highest level (4)."
        assert gate_sessions.get("SBS001A").level == 4

    @pytest.mark.asyncio
    async def test_down_uses_current_floor_ramp(self, db, floor_id):
        bus = await enter(db)
        await change_level(db, "SBS001A", "up")

        result = await change_level(db, "SBS001A", "down")

        assert result.ok
        pos = latest_position(db, bus.id)
        assert pos.source == "level_down"
        assert pos.floor_id == floor_id(2)
        assert (pos.x, pos.y) == (15, 60)

    @pytest.mark.asyncio
    async def test_bad_direction(self, db):
        await enter(db)
        result = await change_level(db, "SBS001A", "sideways")
        assert result.error == ErrorKind.VALIDATION_FAILED


class TestBayMoves:
    @pytest.mark.asyncio
    async def test_move_to_allocated_bay(self, db, bay_by_code):
        bus = await enter(db)
        await auto_assign(db, "SBS001A")

        result = await move_to_allocated_bay(db, "SBS001A")

        assert result.ok
        bay = bay_by_code("L1-A01")
        pos = latest_position(db, bus.id)
        assert (pos.source, pos.x, pos.y) == ("parked_correct", bay.x, bay.y)

    @pytest.mark.asyncio
    async def test_move_to_allocated_bay_on_other_level(self, db, bay_by_code):
        await enter(db)
        await assign_bay(db, bay_by_code("L2-A03").id, "SBS001A")

        result = await move_to_allocated_bay(db, "SBS001A")

        assert result.error == ErrorKind.VALIDATION_FAILED
        assert "different level" in result.message

    @pytest.mark.asyncio
    async def test_move_to_allocated_bay_without_allocation(self, db):
        await enter(db)
        result = await move_to_allocated_bay(db, "SBS001A")
        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_move_to_open_bay_takes_occupancy(self, db, bay_by_code):
        bus = await enter(db)
        await auto_assign(db, "SBS001A")

        result = await move_to_open_bay(db, "SBS001A", chooser=lambda bays: bays[-1])

        assert result.ok
        db.expire_all()
        target = bay_by_code(result.data["bay_code"])
        assert target.current_bus_id == bus.id and not target.is_available
        allocated = bay_by_code("L1-A01")
        assert allocated.current_bus_id is None and allocated.is_available
        assert latest_position(db, bus.id).source == "parked_wrong"

    @pytest.mark.asyncio
    async def test_move_to_open_bay_skips_allocated_bay(self, db):
        await enter(db)
        alloc = await auto_assign(db, "SBS001A")
        seen = []

        def chooser(bays):
            seen.extend(b.id for b in bays)
            return bays[0]

        await move_to_open_bay(db, "SBS001A", chooser=chooser)

        assert alloc.data["bay_id"] not in seen
        assert len(seen) == 11

    @pytest.mark.asyncio
    async def test_no_open_bays_on_level(self, db):
        await enter(db)
        db.query(Bay).update({Bay.is_available: False})
        db.commit()

        result = await move_to_open_bay(db, "SBS001A")

        assert result.error == ErrorKind.NOT_FOUND


class TestReadViews:
    @pytest.mark.asyncio
    async def test_latest_positions_one_per_bus_excluding_outside(self, db):
        await enter(db, "AAA111")
        await move_to_checkpoint(db, "AAA111", "CP3")
        await enter(db, "BBB222")
        await start_gate_event(db, "CCC333", "entry")
        await identify_primary(db, "CCC333")
        await start_gate_event(db, "CCC333", "exit")
        await identify_primary(db, "CCC333")

        result = await latest_positions(db)

        markers = {m["plate"]: m for m in result.data["positions"]}
        assert set(markers) == {"AAA111", "BBB222"}
        assert markers["AAA111"]["source"] == "checkpoint_cp3"
        assert markers["BBB222"]["source"] == "anpr_entry"

    @pytest.mark.asyncio
    async def test_locate_bus(self, db):
        await enter(db)
        await change_level(db, "SBS001A", "up")
        await move_to_checkpoint(db, "SBS001A", "CP1")

        result = await locate_bus(db, "sbs001a")

        assert result.ok
        assert result.data["level"] == 2
        assert result.message == "Bus SBS001A is on Level 2."

    @pytest.mark.asyncio
    async def test_locate_unknown_bus(self, db):
        result = await locate_bus(db, "NOPE")
        assert result.error == ErrorKind.NOT_FOUND

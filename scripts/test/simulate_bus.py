"""
Drive one bus through the depot over HTTP: enter, identify, move, get a bay,
park (correctly or not), and leave.

Usage:
  python scripts/test/simulate_bus.py --plate SBS001A
  python scripts/test/simulate_bus.py --plate SBS002B --rfid --wrong-bay
"""

import argparse
import time
import requests

BACKEND_URL = "http://127.0.0.1:8080/api/v1"


def call(method, path, **kwargs):
    resp = requests.request(method, f"{BACKEND_URL}{path}", timeout=10, **kwargs)
    body = resp.json()
    mark = "✅" if body.get("ok") else "⚠️ "
    print(f"{mark} {method} {path} → HTTP {resp.status_code}: {body.get('message')}")
    return body


def run(plate, use_rfid, wrong_bay, levels_up, fallback_wait):
    call("POST", "/gate/entry", json={"plate": plate})
    if use_rfid:
        print(f"⏳ Waiting {fallback_wait}s for the RFID fallback...")
        time.sleep(fallback_wait)
    else:
        call("POST", "/gate/identify/primary", json={"plate": plate})

    for cp in ("CP1", "CP2"):
        call("POST", "/movements/checkpoint", json={"plate": plate, "checkpoint": cp})

    alloc = call("POST", "/allocations/auto", json={"plate": plate})
    if not alloc.get("ok"):
        return
    data = alloc["data"]

    for _ in range(max(levels_up, data["level"] - 1)):
        call("POST", "/movements/level", json={"plate": plate, "direction": "up"})

    if wrong_bay:
        call("POST", "/movements/open-bay", json={"plate": plate})
        for _ in range(3):
            call("POST", f"/allocations/{data['allocation_id']}/confirm")
        call("GET", "/alerts")
    else:
        call("POST", "/movements/allocated-bay", json={"plate": plate})
        call("POST", f"/allocations/{data['allocation_id']}/confirm")

    call("GET", f"/buses/{plate}/instruction")
    call("POST", "/gate/exit", json={"plate": plate})
    call("POST", "/gate/identify/primary", json={"plate": plate})
    call("GET", "/occupancy/check")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate a bus lifecycle against the backend")
    parser.add_argument("--plate", default="SBS001A")
    parser.add_argument("--rfid", action="store_true", help="skip ANPR and let the fallback fire")
    parser.add_argument("--wrong-bay", action="store_true", help="park elsewhere and confirm 3 times")
    parser.add_argument("--levels-up", type=int, default=0)
    parser.add_argument("--fallback-wait", type=float, default=6.0)
    args = parser.parse_args()

    run(args.plate, args.rfid, args.wrong_bay, args.levels_up, args.fallback_wait)

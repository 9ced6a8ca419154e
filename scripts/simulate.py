"""
Mixed-Version Load Simulation

Fires concurrent gateway calls from clients on different app versions
(and therefore different API versions), plus a stream of fanout events,
while optionally switching the active API version mid-run.

Run from project root against a running server:
    python scripts/simulate.py
    python scripts/simulate.py --requests 200 --switch v2

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_REQUESTS = 100

# Client populations: (app name, app version)
CLIENTS = [
    ("customer", "1.0.0"),
    ("customer", "1.2.3"),
    ("customer", "1.4.0"),
    ("customer", "1.6.1"),
    ("business", "1.3.0"),
    ("business", "1.5.2"),
    ("web", "2.0.0"),
]
REGIONS = ["us-east-1", "us-west-2", "eu-west-1", "ap-southeast-1"]

READ_CALLS = [
    ("get_menu_items", {"store_id": 1}),
    ("get_stores", {}),
    ("get_store", {"store_id": 2}),
    ("get_rewards", {"customer_email": "rewards@example.com"}),
    ("get_store_metrics", {"store_id": 1}),
    ("get_features", {}),
    ("check_compatibility", {}),
    ("get_region_health", {}),
    ("get_smart_menu", {"store_id": 1}),
    ("get_kitchen_load", {"store_id": 1}),
]

FANOUT_TYPES = ["order_status", "order_created", "menu_updated", "store_status", "custom"]


def generate_order_payload() -> dict[str, Any]:
    """Random place_order payload."""
    items = [
        {"menu_item_id": random.randint(1, 4), "quantity": random.randint(1, 3)}
        for _ in range(random.randint(1, 3))
    ]
    subtotal = round(random.uniform(8, 60), 2)
    tax = round(subtotal * 0.08875, 2)
    return {
        "store_id": random.randint(1, 3),
        "customer_name": random.choice(["Ana", "Ben", "Chloe", "Dev", "Emil"]),
        "customer_email": "rewards@example.com",
        "items": items,
        "subtotal": subtotal,
        "tax": tax,
        "total": round(subtotal + tax, 2),
    }


# =============================================================================
# GATEWAY SIMULATION
# =============================================================================

async def send_gateway_call(client: httpx.AsyncClient, call_num: int) -> dict[str, Any]:
    """Send one gateway call from a random client."""
    app_name, app_version = random.choice(CLIENTS)
    if random.random() < 0.25:
        rpc, payload = "place_order", generate_order_payload()
    else:
        rpc, payload = random.choice(READ_CALLS)

    headers = {
        "X-App-Name": app_name,
        "X-App-Version": app_version,
        "X-Client-Region": random.choice(REGIONS),
        "X-Client-Id": f"sim-{call_num % 10}",
    }
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/gateway",
            json={"rpc": rpc, "payload": payload},
            headers=headers,
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        body = response.json()
        meta = body.get("meta", {})
        error = body.get("error")
        return {
            "call_num": call_num,
            "success": response.status_code == 200 and not body.get("error"),
            "rpc": rpc,
            "app_version": app_version,
            "version": meta.get("version"),
            "fallback": meta.get("fallback", False),
            "region": meta.get("region"),
            "error": error.get("code") if isinstance(error, dict) else error,
            "time": elapsed,
        }
    except Exception as e:
        return {
            "call_num": call_num,
            "success": False,
            "rpc": rpc,
            "app_version": app_version,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def send_fanout_event(client: httpx.AsyncClient, event_num: int) -> dict[str, Any]:
    """Broadcast one random event."""
    event_type = random.choice(FANOUT_TYPES)
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/fanout",
            json={
                "type": event_type,
                "payload": {"order_id": 1000 + event_num, "status": "preparing"},
                "sourceRegion": random.choice(REGIONS),
            },
            timeout=30.0,
        )
        body = response.json()
        return {
            "event_num": event_num,
            "success": response.status_code == 200,
            "type": event_type,
            "delivered": response.headers.get("X-Fanout-Success", "0"),
            "total": response.headers.get("X-Fanout-Total", "0"),
            "latency": body.get("totalLatencyMs"),
        }
    except Exception as e:
        return {"event_num": event_num, "success": False, "type": event_type, "error": str(e)[:100]}


async def switch_active_version(
    client: httpx.AsyncClient,
    current: str,
    fallback: str,
    admin_token: Optional[str],
) -> None:
    """Switch versions while traffic is in flight."""
    await asyncio.sleep(0.2)
    headers = {"X-Admin-Token": admin_token} if admin_token else {}
    response = await client.put(
        f"{API_BASE_URL}/api/versions/active",
        json={"current": current, "fallback": fallback},
        headers=headers,
    )
    if response.status_code == 200:
        print(f"🔀 Switched active version -> {current} (fallback {fallback})")
    else:
        print(f"⚠️ Version switch rejected: {response.text[:100]}")


async def run_simulation(
    num_requests: int,
    num_events: int,
    switch_to: Optional[str] = None,
    admin_token: Optional[str] = None,
) -> dict[str, Any]:
    """
    Run the mixed-version simulation.

    Args:
        num_requests: Number of gateway calls
        num_events: Number of fanout events
        switch_to: Version to switch to while the calls are running
        admin_token: X-Admin-Token for the switch
    """
    print("=" * 70)
    print("🔥 MIXED-VERSION GATEWAY SIMULATION")
    print("=" * 70)
    print(f"📋 Gateway calls: {num_requests}")
    print(f"📡 Fanout events: {num_events}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        calls = [send_gateway_call(client, i + 1) for i in range(num_requests)]
        events = [send_fanout_event(client, i + 1) for i in range(num_events)]
        extra = []
        if switch_to:
            extra.append(switch_active_version(client, switch_to, "v1", admin_token))

        gathered = await asyncio.gather(*calls, *events, *extra)

    total_time = round(time.time() - start_time, 2)
    results = gathered[:num_requests]
    fanouts = gathered[num_requests:num_requests + num_events]

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful calls: {len(successful)}/{num_requests}")
    print(f"❌ Failed calls: {len(failed)}/{num_requests}")
    print(f"⏱️  Total Time: {total_time}s")

    by_version: dict[str, int] = {}
    fallbacks = 0
    for r in results:
        if r.get("version"):
            by_version[r["version"]] = by_version.get(r["version"], 0) + 1
        if r.get("fallback"):
            fallbacks += 1

    print("\n🧭 Resolved versions:")
    for version in sorted(by_version):
        print(f"   {version}: {by_version[version]}")
    print(f"   Fallback resolutions: {fallbacks}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print("\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    if fanouts:
        delivered = sum(int(f.get("delivered", 0)) for f in fanouts if f["success"])
        targeted = sum(int(f.get("total", 0)) for f in fanouts if f["success"])
        print(f"\n📡 Fanout: {delivered}/{targeted} region deliveries succeeded")

    if failed:
        print("\n⚠️  Failed Call Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Call #{f['call_num']} {f['rpc']} (app {f['app_version']}): {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_requests,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
        "fanouts": fanouts,
    }


async def run_preflight_checks() -> bool:
    """Check the server is up before firing load."""
    print("\n" + "=" * 70)
    print("🧪 PRE-FLIGHT CHECKS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ Server unreachable: {e}")
            return False
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Active: {data.get('active_version')} (fallback {data.get('fallback_version')})")

        print("\n2️⃣ Registered Versions...")
        response = await client.get(f"{API_BASE_URL}/api/versions")
        for version in response.json().get("versions", []):
            print(f"   {version['version']}: {version['status']} (app >= {version['min_app_version']})")

        print("\n3️⃣ Single Gateway Call...")
        response = await client.post(
            f"{API_BASE_URL}/api/gateway",
            json={"rpc": "get_stores", "payload": {}},
            headers={"X-App-Name": "customer", "X-App-Version": "1.4.0"},
        )
        meta = response.json().get("meta", {})
        print(f"   ✅ {response.status_code} version={meta.get('version')} region={meta.get('region')}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Mixed-version gateway simulation")
    parser.add_argument("--requests", type=int, default=TOTAL_REQUESTS, help="Number of gateway calls")
    parser.add_argument("--events", type=int, default=10, help="Number of fanout events")
    parser.add_argument("--switch", default=None, help="Switch the active version mid-run (e.g. v2)")
    parser.add_argument("--admin-token", default=None, help="X-Admin-Token for --switch")
    parser.add_argument("--skip-checks", action="store_true", help="Skip pre-flight checks")
    args = parser.parse_args()

    if not args.skip_checks:
        if not asyncio.run(run_preflight_checks()):
            print("\n❌ Pre-flight checks failed. Is the server running?")
            sys.exit(1)

    asyncio.run(run_simulation(args.requests, args.events, args.switch, args.admin_token))

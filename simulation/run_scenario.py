"""Simulation script that drives two devices through the mock relay.

Walks through a realistic scenario:
1. Device A requests a sync key by email and verifies it
2. Device A records a few spools and syncs them up
3. Device B adopts the same key and receives the inventory
4. Device B logs a print against one spool and syncs
5. Device A syncs again and sees B's usage

Usage:
    # Start the mock relay first, then:
    python -m simulation.run_scenario

Environment:
    MOCK_RELAY_URL   — default: http://localhost:8090/
    MOCK_ADMIN_URL   — default: http://localhost:8091
    SCENARIO_EMAIL   — default: maker@example.com
"""

from __future__ import annotations

import asyncio
import os
import tempfile

import aiohttp

from filasync.config import SyncConfig
from filasync.document_store import DocumentStore
from filasync.inventory import InventoryService
from filasync.local_store import LocalStoreAdapter
from filasync.models import Filament, SyncAlert
from filasync.relay_client import RelayClient
from filasync.settings_store import SettingsStore
from filasync.sync_engine import SyncEngine

MOCK_RELAY_URL = os.environ.get("MOCK_RELAY_URL", "http://localhost:8090/")
MOCK_ADMIN_URL = os.environ.get("MOCK_ADMIN_URL", "http://localhost:8091")
SCENARIO_EMAIL = os.environ.get("SCENARIO_EMAIL", "maker@example.com")


def header(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def step(text: str) -> None:
    print(f"  >> {text}")


def show_alert(device: str, alert: SyncAlert) -> None:
    step(f"[{device}] {alert.variant}: {alert.message}")


class Device:
    """One filasync installation with its own data directory."""

    def __init__(self, name: str, data_dir: str) -> None:
        self.name = name
        self.config = SyncConfig(relay_url=MOCK_RELAY_URL, data_dir=data_dir, cooldown_seconds=0)
        store = DocumentStore(self.config.filament_db_path)
        store.load()
        self.local = LocalStoreAdapter(store)
        self.local.migrate()
        self.settings = SettingsStore(self.config.settings_path)
        self.settings.load()
        self.relay = RelayClient(self.config)
        self.engine = SyncEngine(self.local, self.relay, self.settings, self.config)
        self.inventory = InventoryService(self.local, on_modified=self.engine.update_last_modified)

    def show_inventory(self) -> None:
        filaments = self.inventory.list_filaments()
        if not filaments:
            step(f"[{self.name}] (no spools)")
        for f in filaments:
            step(
                f"[{self.name}] {f.brand} {f.material} {f.filament} | "
                f"used={f.used_weight:.1f}g remaining={f.remaining_weight:.1f}g "
                f"prints={len(f.usage_history)}"
            )

    async def close(self) -> None:
        await self.relay.close()


async def check_relay(session: aiohttp.ClientSession) -> bool:
    try:
        async with session.get(f"{MOCK_ADMIN_URL}/admin/health") as resp:
            if resp.status != 200:
                print(f"ERROR: Mock relay admin not responding (HTTP {resp.status})")
                return False
            print("  Mock relay: OK")
            return True
    except aiohttp.ClientError as e:
        print(f"ERROR: Mock relay not reachable at {MOCK_ADMIN_URL}: {e}")
        print("  Start it with: python -m simulation.mock_relay")
        return False


async def find_key(session: aiohttp.ClientSession, email: str) -> str | None:
    """Read the verification key the relay would have emailed."""
    async with session.get(f"{MOCK_ADMIN_URL}/admin/accounts") as resp:
        accounts = await resp.json()
    for account in reversed(accounts):
        if account["email"] == email:
            return account["key"]
    return None


async def run_scenario() -> None:
    async with aiohttp.ClientSession() as session:
        header("filasync two-device simulation")
        step("Checking services...")
        if not await check_relay(session):
            return
        await session.post(f"{MOCK_ADMIN_URL}/admin/reset")

        with tempfile.TemporaryDirectory() as dir_a, tempfile.TemporaryDirectory() as dir_b:
            device_a = Device("A", dir_a)
            device_b = Device("B", dir_b)
            try:
                # ── Step 1: Set up sync on device A ───────────────────
                header("Step 1: Device A requests a sync key")
                show_alert("A", await device_a.engine.create_sync_identity(SCENARIO_EMAIL))
                step(f"Device A status: {device_a.engine.status.value}")
                key = await find_key(session, SCENARIO_EMAIL)
                if key is None:
                    print("\n  WARNING: relay did not issue a key")
                    return
                step(f"Key from email: {key}")
                show_alert("A", await device_a.engine.adopt_existing_key(key))

                # ── Step 2: Record spools on A ────────────────────────
                header("Step 2: Device A records spools and syncs")
                for name, material, brand, color in [
                    ("Charcoal Black", "PLA", "Bambu", "#333333"),
                    ("Fire Red", "PETG", "Polymaker", "#FF2200"),
                    ("White", "TPU", "eSUN", "#FFFFFF"),
                ]:
                    device_a.inventory.save_filament(
                        Filament(filament=name, material=material, brand=brand, color=color)
                    )
                device_a.show_inventory()
                show_alert("A", await device_a.engine.check_for_updates())

                # ── Step 3: Device B joins ────────────────────────────
                header("Step 3: Device B adopts the same key")
                show_alert("B", await device_b.engine.adopt_existing_key(key))
                device_b.show_inventory()

                # ── Step 4: B logs a print ────────────────────────────
                header("Step 4: Device B logs a print and syncs")
                petg = next(f for f in device_b.inventory.list_filaments() if f.material == "PETG")
                device_b.inventory.add_usage(petg.id, 87.1, print_name="Enclosure panel")
                device_b.show_inventory()
                show_alert("B", await device_b.engine.check_for_updates())

                # ── Step 5: A catches up ──────────────────────────────
                header("Step 5: Device A syncs and sees B's usage")
                show_alert("A", await device_a.engine.check_for_updates())
                device_a.show_inventory()

                header("Simulation complete!")
            finally:
                await device_a.close()
                await device_b.close()


if __name__ == "__main__":
    asyncio.run(run_scenario())

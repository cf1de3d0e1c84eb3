"""Mock sync relay for integration testing.

Implements the relay's single-endpoint JSON protocol in memory, plus a small
admin API for test control. Verification keys that a real relay would email
are printed to stdout instead.

Usage:
    python -m simulation.mock_relay

    # Or with custom settings:
    MOCK_PORT=8090 MOCK_ADMIN_PORT=8091 MOCK_APP=filameter python -m simulation.mock_relay

Relay API (port 8090):
    POST /                 → {"function": "create"|"pull"|"push"|"timestamp"|"forgot", ...}

Admin API (port 8091):
    GET  /admin/health     → health check
    GET  /admin/accounts   → every account with its record count (plaintext)
    POST /admin/rotate     → issue a new key for an account, old key becomes an alias
    POST /admin/fail       → make the next N relay requests answer HTTP 500
    POST /admin/reset      → clear all accounts
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from aiohttp import web


# ── Account store ───────────────────────────────────────────────────

@dataclass
class Account:
    key: str
    email: str
    key_type: str = "personal"
    verified: bool = False
    data: dict[str, Any] = field(default_factory=lambda: {"regular": [], "local": []})
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class RelayState:
    def __init__(self, app_name: str = "filameter") -> None:
        self.app_name = app_name
        self.accounts: dict[str, Account] = {}
        self.aliases: dict[str, str] = {}  # old key -> current key
        self.outbox: list[tuple[str, str]] = []  # (email, key) a real relay would mail
        self.fail_next = 0
        self.requests: list[dict[str, Any]] = []

    def resolve(self, key: str) -> Account | None:
        return self.accounts.get(self.aliases.get(key, key))

    def create(self, email: str) -> Account:
        account = Account(key=secrets.token_hex(16), email=email)
        self.accounts[account.key] = account
        self.outbox.append((email, account.key))
        return account

    def rotate(self, key: str) -> Account | None:
        account = self.resolve(key)
        if account is None:
            return None
        new_key = secrets.token_hex(16)
        del self.accounts[account.key]
        self.aliases[account.key] = new_key
        for old, current in list(self.aliases.items()):
            if current == account.key:
                self.aliases[old] = new_key
        account.key = new_key
        self.accounts[new_key] = account
        return account

    def reset(self) -> None:
        self.accounts.clear()
        self.aliases.clear()
        self.outbox.clear()
        self.requests.clear()
        self.fail_next = 0


APP_KEY = web.AppKey("relay_state", RelayState)


def _error(message: str) -> web.Response:
    return web.json_response({"status": "error", "error": message})


# ── Relay routes ────────────────────────────────────────────────────

async def handle_relay(request: web.Request) -> web.Response:
    """POST / — dispatch on the `function` field."""
    state: RelayState = request.app[APP_KEY]
    if state.fail_next > 0:
        state.fail_next -= 1
        return web.Response(status=500, text="Internal Server Error")
    try:
        body = await request.json()
    except ValueError:
        return web.Response(status=400, text="Invalid JSON")
    if not isinstance(body, dict):
        return web.Response(status=400, text="Expected a JSON object")
    state.requests.append(body)

    if body.get("app") != state.app_name:
        return _error("Unknown app")

    function = body.get("function")
    if function == "create":
        email = body.get("email") or ""
        if "@" not in email:
            return _error("A valid email is required")
        account = state.create(email)
        print(f"[Mock Relay] Verification key for {email}: {account.key}")
        return web.json_response({"status": "message", "msg": "Check your email for a verification code"})

    if function == "forgot":
        email = body.get("email") or ""
        keys = [a.key for a in state.accounts.values() if a.email == email and a.verified]
        if not keys:
            return _error("No sync keys found for that email")
        for key in keys:
            state.outbox.append((email, key))
        return web.json_response({"status": "message", "msg": "Your sync keys have been sent to your email"})

    account = state.resolve(body.get("key") or "")
    if account is None:
        return _error("key not found")

    if function == "pull":
        account.verified = True
        return web.json_response({
            "status": "success",
            "data": {
                "token": account.key,
                "userData": {"email": account.email},
                "keyType": account.key_type,
                "data": account.data,
                "timestamp": account.timestamp,
            },
        })

    if function == "push":
        data = body.get("data")
        if not isinstance(data, dict):
            return _error("data is required")
        account.data = {"regular": data.get("regular") or [], "local": data.get("local") or []}
        account.timestamp = datetime.now(timezone.utc).isoformat()
        print(f"[Mock Relay] {account.email}: stored {len(account.data['regular'])} records")
        return web.json_response({"status": "success"})

    if function == "timestamp":
        return web.json_response({"status": "success", "timestamp": account.timestamp})

    return _error(f"Unknown function: {function}")


# ── Admin routes (for test control) ─────────────────────────────────

async def admin_health(request: web.Request) -> web.Response:
    state: RelayState = request.app[APP_KEY]
    return web.json_response({"status": "ok", "account_count": len(state.accounts)})


async def admin_accounts(request: web.Request) -> web.Response:
    state: RelayState = request.app[APP_KEY]
    return web.json_response([
        {
            "key": a.key,
            "email": a.email,
            "verified": a.verified,
            "records": len(a.data.get("regular", [])),
            "timestamp": a.timestamp,
        }
        for a in state.accounts.values()
    ])


async def admin_rotate(request: web.Request) -> web.Response:
    """POST /admin/rotate — JSON body: { "key": "..." }"""
    state: RelayState = request.app[APP_KEY]
    data = await request.json()
    account = state.rotate(data.get("key", ""))
    if account is None:
        return web.json_response({"error": "key not found"}, status=404)
    return web.json_response({"key": account.key})


async def admin_fail(request: web.Request) -> web.Response:
    """POST /admin/fail — JSON body: { "count": 1 }"""
    state: RelayState = request.app[APP_KEY]
    data = await request.json()
    state.fail_next = int(data.get("count", 1))
    return web.json_response({"fail_next": state.fail_next})


async def admin_reset(request: web.Request) -> web.Response:
    state: RelayState = request.app[APP_KEY]
    state.reset()
    print("[Mock Relay] All accounts cleared")
    return web.json_response({"status": "reset"})


# ── Server setup ────────────────────────────────────────────────────

def create_relay_app(state: RelayState) -> web.Application:
    app = web.Application()
    app[APP_KEY] = state
    app.router.add_post("/", handle_relay)
    return app


def create_admin_app(state: RelayState) -> web.Application:
    app = web.Application()
    app[APP_KEY] = state
    app.router.add_get("/admin/health", admin_health)
    app.router.add_get("/admin/accounts", admin_accounts)
    app.router.add_post("/admin/rotate", admin_rotate)
    app.router.add_post("/admin/fail", admin_fail)
    app.router.add_post("/admin/reset", admin_reset)
    return app


async def start_servers() -> None:
    """Start both servers concurrently."""
    import asyncio

    relay_port = int(os.environ.get("MOCK_PORT", "8090"))
    admin_port = int(os.environ.get("MOCK_ADMIN_PORT", "8091"))
    state = RelayState(os.environ.get("MOCK_APP", "filameter"))

    relay_runner = web.AppRunner(create_relay_app(state))
    admin_runner = web.AppRunner(create_admin_app(state))
    await relay_runner.setup()
    await admin_runner.setup()
    await web.TCPSite(relay_runner, "0.0.0.0", relay_port).start()
    await web.TCPSite(admin_runner, "0.0.0.0", admin_port).start()

    print(f"[Mock Relay] Relay API running on port {relay_port} (app={state.app_name})")
    print(f"[Mock Relay] Admin API running on port {admin_port}")
    print()

    # Keep running
    await asyncio.Event().wait()


if __name__ == "__main__":
    import asyncio
    asyncio.run(start_servers())

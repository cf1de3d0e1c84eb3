"""Sync orchestration between the local filament database and the relay.

The engine decides between push, pull and merge from three instants (the
relay's last write, our last successful sync, our last local edit), enforces
the cooldown between ordinary syncs, and sequences relay calls with local
store writes. One operation runs at a time; a second trigger while one is in
flight is rejected.

Every public operation returns a SyncAlert and never raises.

Known ordering risk: `lastSynced` is stamped as soon as the relay confirms a
pull, before the pulled data is imported. If the import then fails the
bookkeeping is ahead of the local data; the caller gets a PARTIAL alert.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Union

from .config import SyncConfig
from .errors import (
    BulkImportError,
    ConflictError,
    InvalidInput,
    RelayError,
    StoreUnavailable,
    SyncError,
    TransportError,
)
from .local_store import LocalStoreAdapter
from .merge import merge_envelopes
from .models import ExportEnvelope, PullResult, SyncAlert, SyncIdentity, SyncOutcome, SyncStatus
from .relay_client import RelayClient
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Confirmation = Union[bool, Callable[[], bool]]


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC datetime. None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _by_id(docs: list[dict]) -> dict:
    return {doc.get("_id"): doc for doc in docs}


class _Rejected(Exception):
    """Raised inside an operation to stop before any relay call."""

    def __init__(self, message: str, variant: str = "warning") -> None:
        super().__init__(message)
        self.message = message
        self.variant = variant


class SyncEngine:
    """Orchestrates push / pull / merge between the local store and the relay."""

    def __init__(
        self,
        local: LocalStoreAdapter,
        relay: RelayClient,
        settings: SettingsStore,
        config: SyncConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._local = local
        self._relay = relay
        self._settings = settings
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._spinning = False

    # ── State ────────────────────────────────────────────────────────

    @property
    def identity(self) -> SyncIdentity | None:
        return self._settings.get_identity()

    @property
    def status(self) -> SyncStatus:
        identity = self.identity
        if identity is None:
            return SyncStatus.NONE
        return identity.status

    @property
    def is_spinning(self) -> bool:
        return self._spinning

    def load(self) -> SyncStatus:
        """Read the persisted identity and report where the state machine stands."""
        status = self.status
        logger.info("Sync status: %s", status.value)
        return status

    def cooldown_remaining(self) -> int:
        """Whole seconds left before an ordinary sync is allowed again."""
        last = self._settings.get_last_sync_time()
        if last is None:
            return 0
        window = self._config.cooldown_seconds
        elapsed = max(0.0, self._clock().timestamp() - last)
        return max(0, math.ceil(window - elapsed))

    def update_last_modified(self) -> None:
        """Mark the local store as changed outside of a sync."""
        self._settings.set_last_modified(self._now_iso())

    # ── Public operations ────────────────────────────────────────────

    async def create_sync_identity(self, email: str) -> SyncAlert:
        """Ask the relay to email a verification key for `email`."""

        async def run() -> SyncAlert:
            email_clean = (email or "").strip()
            if not is_valid_email(email_clean):
                raise InvalidInput("Invalid Email!")
            message = await self._relay.create(email_clean)
            identity = self.identity or SyncIdentity()
            identity.email = email_clean
            identity.needs_verification = True
            self._settings.save_identity(identity)
            logger.info("Sync setup requested for %s, awaiting verification", email_clean)
            return SyncAlert("info", message)

        return await self._exclusive("create", run)

    async def adopt_existing_key(self, key: str) -> SyncAlert:
        """Engage sync with a key from email or another device, then sync both ways."""

        async def run() -> SyncAlert:
            key_clean = (key or "").strip()
            if not key_clean:
                raise InvalidInput("Key is required!")
            self._require_store()
            pulled = await self._relay.pull(key_clean)
            identity = SyncIdentity(
                sync_key=pulled.token,
                email=pulled.account_email,
                account_type=pulled.account_type,
            )
            identity = self._record_pull(identity)
            logger.info("Sync engaged for %s (%s)", identity.email or "unknown account", identity.account_type)
            alert = await self._merge_import_push(identity, pulled)
            if alert.outcome is SyncOutcome.SUCCESS:
                alert.message = "Sync successful! Your data has been merged and pushed to the cloud."
            return alert

        return await self._exclusive("adopt", run)

    async def check_for_updates(self) -> SyncAlert:
        """The routine "Sync Now": pull+push, push only, or nothing, by timestamp."""

        async def run() -> SyncAlert:
            identity = self._require_engaged()
            self._require_store()
            remaining = self.cooldown_remaining()
            if remaining > 0:
                raise _Rejected(f"Please wait {remaining} seconds between syncs")

            remote_raw = await self._relay.timestamp(identity.sync_key)
            if not remote_raw:
                return SyncAlert("warning", "Could not compare sync times: timestamp missing.", SyncOutcome.FAILED)
            remote_ts = parse_timestamp(remote_raw)
            if remote_ts is None:
                return SyncAlert("danger", "Error comparing sync times: Invalid date format.", SyncOutcome.FAILED)

            last_synced = parse_timestamp(identity.last_synced) or EPOCH
            last_modified = parse_timestamp(self._settings.get_last_modified()) or EPOCH

            if remote_ts > last_synced:
                logger.info("Remote changed at %s (last synced %s), syncing both ways", remote_ts, last_synced)
                return await self._bidirectional(identity)
            if last_modified > last_synced:
                logger.info("Local changes since %s, pushing", last_synced)
                return await self._push(identity)

            self._start_cooldown()
            return SyncAlert("success", "Data is up-to-date.", SyncOutcome.NOOP)

        return await self._exclusive("check", run)

    async def force_push(self) -> SyncAlert:
        """Overwrite the remote snapshot with the local export, ignoring the cooldown."""

        async def run() -> SyncAlert:
            identity = self._require_engaged()
            self._require_store()
            return await self._push(identity)

        return await self._exclusive("force push", run)

    async def force_pull(self) -> SyncAlert:
        """Pull, merge and import, ignoring the cooldown. Nothing is pushed."""

        async def run() -> SyncAlert:
            identity = self._require_engaged()
            self._require_store()
            pulled = await self._relay.pull(identity.sync_key)
            identity = self._record_pull(identity, pulled)
            if pulled.envelope.is_empty():
                return SyncAlert("info", "Cloud data was empty. Local data remains unchanged.")
            try:
                await self._merge_and_import(pulled.envelope)
            except (ConflictError, BulkImportError, OSError) as e:
                return self._partial(e)
            return SyncAlert("success", "Data has been pulled and merged with local data!")

        return await self._exclusive("force pull", run)

    async def remove_sync(self, confirm: Confirmation) -> SyncAlert:
        """Forget the sync identity and both timestamps. Not reversible."""

        async def run() -> SyncAlert:
            confirmed = confirm() if callable(confirm) else bool(confirm)
            if not confirmed:
                return SyncAlert("info", "Sync removal cancelled.", SyncOutcome.REJECTED)
            self._settings.clear_identity()
            self._settings.set_last_modified(None)
            self._settings.set_last_sync_time(None)
            logger.info("Sync identity removed")
            return SyncAlert("info", "Sync Removed")

        return await self._exclusive("remove", run)

    async def forgot_key(self, email: str) -> SyncAlert:
        """Ask the relay to email the keys registered to `email`."""

        async def run() -> SyncAlert:
            email_clean = (email or "").strip()
            if not is_valid_email(email_clean):
                raise InvalidInput("Invalid Email!")
            message = await self._relay.forgot(email_clean)
            return SyncAlert("info", message)

        return await self._exclusive("forgot", run)

    # ── Periodic sync loop ───────────────────────────────────────────

    async def periodic_sync_loop(self) -> None:
        """Run check_for_updates in a loop with the configured interval."""
        logger.info("Starting periodic sync loop (interval=%ds)", self._config.poll_interval_seconds)
        while True:
            try:
                if self.status is SyncStatus.ENGAGED:
                    alert = await self.check_for_updates()
                    log = logger.info if alert.ok else logger.warning
                    log("Periodic sync: %s", alert.message)
            except asyncio.CancelledError:
                logger.info("Periodic sync loop cancelled")
                return
            except Exception as e:
                logger.exception("Periodic sync error: %s", e)
            await asyncio.sleep(self._config.poll_interval_seconds)

    # ── Sync flows ───────────────────────────────────────────────────

    async def _bidirectional(self, identity: SyncIdentity) -> SyncAlert:
        pulled = await self._relay.pull(identity.sync_key)
        identity = self._record_pull(identity, pulled)
        return await self._merge_import_push(identity, pulled)

    async def _merge_import_push(self, identity: SyncIdentity, pulled: PullResult) -> SyncAlert:
        """Second half of a bidirectional sync: the pull has already been recorded."""
        if pulled.envelope.is_empty():
            merged = await self._local.export_all_async()
        else:
            try:
                merged = await self._merge_and_import(pulled.envelope)
            except (ConflictError, BulkImportError, OSError) as e:
                return self._partial(e)

        try:
            await self._relay.push(identity.sync_key, merged)
        except SyncError as e:
            logger.error("Push after pull failed: %s", e)
            message = str(e) if isinstance(e, RelayError) else "Data was pulled, but the push failed. Try again."
            return SyncAlert("danger", message, SyncOutcome.PARTIAL)
        self._record_push(identity)
        return SyncAlert("success", "Data has been pulled, merged and synced to the cloud!")

    async def _merge_and_import(self, remote: ExportEnvelope) -> ExportEnvelope:
        local = await self._local.export_all_async()
        merged = merge_envelopes(local, remote, self._config.conflict_policy)
        await self._local.bulk_import_async(merged)
        if _by_id(merged.regular) != _by_id(remote.regular):
            # Local has records the remote lacks; leave a marker so the next check pushes them
            self.update_last_modified()
        logger.info(
            "Merged %d local and %d remote records into %d",
            len(local.regular), len(remote.regular), len(merged.regular),
        )
        return merged

    async def _push(self, identity: SyncIdentity) -> SyncAlert:
        envelope = await self._local.export_all_async()
        await self._relay.push(identity.sync_key, envelope)
        self._record_push(identity)
        logger.info("Pushed %d records", len(envelope.regular))
        return SyncAlert("success", "Data has been synced to the cloud!")

    # ── Bookkeeping ──────────────────────────────────────────────────

    def _record_pull(self, identity: SyncIdentity, pulled: PullResult | None = None) -> SyncIdentity:
        """Persist a confirmed pull: rotated key, account info, lastSynced, cooldown."""
        if pulled is not None:
            identity.sync_key = pulled.token or identity.sync_key
            identity.email = pulled.account_email or identity.email
            identity.account_type = pulled.account_type or identity.account_type
        identity.needs_verification = False
        identity.last_synced = self._now_iso()
        self._settings.save_identity(identity)
        self._start_cooldown()
        return identity

    def _record_push(self, identity: SyncIdentity) -> None:
        identity.last_synced = self._now_iso()
        self._settings.save_identity(identity)
        self._start_cooldown()

    def _start_cooldown(self) -> None:
        self._settings.set_last_sync_time(self._clock().timestamp())

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    # ── Guards ───────────────────────────────────────────────────────

    def _require_store(self) -> None:
        if not self._local.is_ready:
            raise StoreUnavailable("Database not ready or sync key missing.")

    def _require_engaged(self) -> SyncIdentity:
        identity = self.identity
        if identity is None:
            raise _Rejected("Sync is not set up.")
        if identity.status is SyncStatus.PENDING_VERIFICATION:
            raise _Rejected("Check your email for a verification code", "info")
        return identity

    def _partial(self, error: Exception) -> SyncAlert:
        logger.error("Pulled data could not be imported: %s", error)
        return SyncAlert(
            "danger",
            f"Data was pulled from the cloud but could not be saved locally: {error}",
            SyncOutcome.PARTIAL,
        )

    async def _exclusive(self, name: str, operation: Callable[[], Awaitable[SyncAlert]]) -> SyncAlert:
        """Run one operation with the in-flight flag held, converting errors to alerts."""
        if self._spinning:
            logger.info("Rejected %s: a sync is already in progress", name)
            return SyncAlert("warning", "A sync is already in progress.", SyncOutcome.REJECTED)
        self._spinning = True
        try:
            return await operation()
        except _Rejected as e:
            return SyncAlert(e.variant, e.message, SyncOutcome.REJECTED)
        except InvalidInput as e:
            return SyncAlert("danger", str(e), SyncOutcome.REJECTED)
        except StoreUnavailable as e:
            logger.warning("%s aborted: %s", name, e)
            return SyncAlert("warning", str(e), SyncOutcome.REJECTED)
        except RelayError as e:
            return SyncAlert("danger", str(e), SyncOutcome.FAILED)
        except TransportError as e:
            logger.error("%s failed: %s", name, e)
            return SyncAlert("danger", "Sync Failed! Check your connection and try again.", SyncOutcome.FAILED)
        except SyncError as e:
            logger.error("%s failed: %s", name, e)
            return SyncAlert("danger", str(e), SyncOutcome.FAILED)
        except OSError as e:
            logger.error("%s failed writing local state: %s", name, e)
            return SyncAlert("danger", f"Sync Failed! {e}", SyncOutcome.FAILED)
        except Exception as e:
            logger.exception("%s failed unexpectedly: %s", name, e)
            return SyncAlert("danger", f"Sync Failed! {e}", SyncOutcome.FAILED)
        finally:
            self._spinning = False

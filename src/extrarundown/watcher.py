"""Polling watcher that turns sheet edits into rundown change events.

Each check cycle is an explicit state transition per spreadsheet:

    fetch -> diff(stored, fetched) -> send changes -> stored := fetched

The watcher owns the stored snapshots; the diff engine stays a pure function.
Checks of the same spreadsheet never overlap.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from typing import TYPE_CHECKING

from loguru import logger

from extrarundown.diff import RundownChange, diff_rundowns, summarize_changes
from extrarundown.exceptions import SheetParseError
from extrarundown.sheet_parser import parse_rundown
from extrarundown.sink import SinkError, resolve_payload
from extrarundown.transport import NotFoundError, TransportError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from extrarundown.models import Rundown
    from extrarundown.sink import ChangeSink
    from extrarundown.transport import Transport

DEFAULT_SHEET_NAME = "Rundown"


class RundownWatcher:
    """Watches rundown spreadsheets and forwards changes to a sink.

    Example:
        >>> transport = GoogleSheetsTransport(access_token="ya29...")
        >>> watcher = RundownWatcher(transport, LoggingSink())
        >>> await watcher.run(["1BxiMVs0XRA5nFMdKvBdBZjgmUUqptlbs74OgvE2upms"], interval=2)
    """

    def __init__(
        self,
        transport: Transport,
        sink: ChangeSink,
        *,
        sheet_name: str = DEFAULT_SHEET_NAME,
        gateway_version: str | None = None,
        write_back_ids: bool = True,
    ) -> None:
        """Initialize the watcher.

        Args:
            transport: Transport used to fetch sheets and write ids back
            sink: Receives every change with its payload
            sheet_name: Title of the sheet holding the rundown
            gateway_version: If set, rundowns declaring a different version
                are ignored
            write_back_ids: Write generated ids back to the sheet
        """
        self._transport = transport
        self._sink = sink
        self._sheet_name = sheet_name
        self._gateway_version = gateway_version
        self._write_back_ids = write_back_ids
        self._snapshots: dict[str, Rundown] = {}
        self._folders: dict[str, tuple[str, ...]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._stop = asyncio.Event()

    @property
    def snapshots(self) -> dict[str, Rundown]:
        """Last accepted snapshot per spreadsheet id (read-only copy)."""
        return dict(self._snapshots)

    async def fetch_rundown(self, spreadsheet_id: str) -> Rundown | None:
        """Fetch and parse a spreadsheet.

        Returns:
            The parsed rundown, or None if the spreadsheet or its rundown
            sheet no longer exists

        Raises:
            TransportError: On authentication, API or network failures
            SheetParseError: If the sheet content is malformed
        """
        try:
            metadata = await self._transport.get_metadata(spreadsheet_id)
            if not metadata.has_sheet(self._sheet_name):
                logger.warning(
                    "Spreadsheet {} has no '{}' sheet", spreadsheet_id, self._sheet_name
                )
                return None
            values = await self._transport.get_values(spreadsheet_id, self._sheet_name)
        except NotFoundError:
            logger.info("Spreadsheet {} not found", spreadsheet_id)
            return None

        result = parse_rundown(spreadsheet_id, metadata.title, values.values)

        if result.sheet_updates and self._write_back_ids:
            try:
                await self._transport.update_values(
                    spreadsheet_id, self._sheet_name, result.sheet_updates
                )
            except TransportError as e:
                logger.warning(
                    "Could not write {} id(s) back to {}: {}",
                    len(result.sheet_updates),
                    spreadsheet_id,
                    e,
                )

        return result.rundown

    async def check(
        self, spreadsheet_id: str, *, as_new: bool = False
    ) -> list[RundownChange]:
        """Fetch a spreadsheet and forward its changes since the last check.

        Args:
            spreadsheet_id: The spreadsheet to check
            as_new: Diff against nothing, so the rundown is re-created

        Returns:
            The changes that were sent
        """
        async with self._locks[spreadsheet_id]:
            new_rundown = await self.fetch_rundown(spreadsheet_id)
            return await self._apply(spreadsheet_id, new_rundown, as_new=as_new)

    async def apply(
        self,
        spreadsheet_id: str,
        new_rundown: Rundown | None,
        *,
        as_new: bool = False,
    ) -> list[RundownChange]:
        """Diff an externally fetched snapshot against the stored one and send changes.

        Args:
            spreadsheet_id: Key the snapshot is stored under
            new_rundown: The new snapshot, or None if the rundown is gone
            as_new: Diff against nothing, so the rundown is re-created

        Returns:
            The changes that were sent
        """
        async with self._locks[spreadsheet_id]:
            return await self._apply(spreadsheet_id, new_rundown, as_new=as_new)

    async def remove(self, spreadsheet_id: str) -> list[RundownChange]:
        """Treat a spreadsheet as deleted."""
        return await self.apply(spreadsheet_id, None)

    async def _apply(
        self,
        spreadsheet_id: str,
        new_rundown: Rundown | None,
        *,
        as_new: bool,
    ) -> list[RundownChange]:
        if new_rundown is not None and not self._accepts_version(new_rundown):
            logger.info(
                "Ignoring {}: gateway version {} does not match {}",
                spreadsheet_id,
                new_rundown.gateway_version,
                self._gateway_version,
            )
            return []

        old_rundown = None if as_new else self._snapshots.get(spreadsheet_id)
        changes = diff_rundowns(old_rundown, new_rundown)

        for change in changes:
            payload = resolve_payload(change, new_rundown)
            await self._sink.send(change, payload)

        # Only replace the snapshot once every change was delivered
        if new_rundown is None:
            self._snapshots.pop(spreadsheet_id, None)
        else:
            self._snapshots[spreadsheet_id] = new_rundown

        if changes:
            logger.info("Rundown {}: {}", spreadsheet_id, summarize_changes(changes))
        return changes

    def _accepts_version(self, rundown: Rundown) -> bool:
        # A sheet with an empty version cell is accepted by every gateway
        if not self._gateway_version or not rundown.gateway_version:
            return True
        return rundown.gateway_version == self._gateway_version

    async def check_folder(self, folder_id: str) -> list[str]:
        """List a Drive folder and delete rundowns whose sheet left it.

        A sheet that was listed on the previous call and is missing now
        (moved, trashed or renamed with a leading underscore) gets a
        rundown_delete if it was ever accepted.

        Returns:
            Ids of the spreadsheets currently in the folder

        Raises:
            TransportError: If the folder cannot be listed
            SinkError: If a delete was not delivered. The next call repeats it.
        """
        files = await self._transport.list_folder(folder_id)
        current = tuple(dict.fromkeys(f.file_id for f in files))
        previous = self._folders.get(folder_id, ())

        added = [i for i in current if i not in previous]
        if added:
            logger.info("Folder {}: found {} new spreadsheet(s)", folder_id, len(added))
        for spreadsheet_id in previous:
            if spreadsheet_id not in current:
                logger.info("Spreadsheet {} left folder {}", spreadsheet_id, folder_id)
                await self.remove(spreadsheet_id)

        # Kept at the old listing until every delete was delivered
        self._folders[folder_id] = current
        return list(current)

    async def run(
        self,
        spreadsheet_ids: Sequence[str] = (),
        *,
        folder_id: str | None = None,
        interval: float,
        iterations: int | None = None,
    ) -> None:
        """Poll the given spreadsheets until stopped.

        Failures of a single spreadsheet are logged and retried on the next
        cycle. SnapshotInconsistencyError is a bug and is not caught.

        Args:
            spreadsheet_ids: Spreadsheets to watch
            folder_id: Drive folder whose spreadsheets are watched as well,
                listed again at the start of every cycle
            interval: Seconds between cycles
            iterations: Stop after this many cycles (None = run until stop())
        """
        logger.info(
            "Watching {} spreadsheet(s){} every {}s",
            len(spreadsheet_ids),
            f" and folder {folder_id}" if folder_id else "",
            interval,
        )
        self._stop.clear()
        cycle = 0
        while not self._stop.is_set():
            watched = list(spreadsheet_ids)
            if folder_id:
                try:
                    folder_ids = await self.check_folder(folder_id)
                except (TransportError, SinkError) as e:
                    logger.error("Check of folder {} failed: {}", folder_id, e)
                    folder_ids = list(self._folders.get(folder_id, ()))
                watched.extend(i for i in folder_ids if i not in watched)

            for spreadsheet_id in watched:
                try:
                    await self.check(spreadsheet_id)
                except (TransportError, SheetParseError, SinkError) as e:
                    logger.error("Check of {} failed: {}", spreadsheet_id, e)

            cycle += 1
            if iterations is not None and cycle >= iterations:
                break
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=interval)

        logger.info("Watcher stopped after {} cycle(s)", cycle)

    def stop(self) -> None:
        """Ask a running poll loop to exit after the current cycle."""
        self._stop.set()

import unittest
from unittest.mock import patch

from botocore.exceptions import ProfileNotFound

from memory_provider import MemoryProvider, MemoryS3Client

from s3tui.browser import Browser, Frame, Mode
from s3tui.entry import EntryKind
from s3tui.events import SHUTDOWN, TICK, EventChannel, key_event
from s3tui.objectstore import ObjectStoreProvider
from s3tui.transfer import TransferProgress


class _RecordingBrowser(Browser):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.handled = []

    async def handle_event(self, event):
        self.handled.append(event)
        return await super().handle_event(event)


class TestBrowser(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.frames: list[Frame] = []
        self.shutdowns = 0
        self.remote = MemoryProvider(
            "s3://bucket",
            {
                "a.txt": b"alpha",
                "docs/x.txt": b"x" * 10,
                "docs/y.txt": b"y",
                "docs/deep/z.txt": b"z",
            },
            remote=True,
        )
        self.local = MemoryProvider("local", {"notes.md": b"# notes"})

    def _shutdown(self) -> None:
        self.shutdowns += 1

    def _browser(self, providers=None, cls=Browser):
        return cls(
            providers or [self.remote, self.local],
            render=self.frames.append,
            on_shutdown=self._shutdown,
        )

    async def _started(self, providers=None):
        browser = self._browser(providers)
        await browser.refresh()
        return browser

    async def _press(self, browser, *keys):
        for key in keys:
            await browser.handle_event(key_event(key))

    async def test_run_processes_events_in_order_and_stops_after_shutdown(self) -> None:
        channel = EventChannel()
        for event in [key_event("down"), TICK, key_event("enter"), SHUTDOWN, key_event("up")]:
            channel.send(event)
        browser = self._browser(cls=_RecordingBrowser)
        await browser.run(channel)

        self.assertEqual(
            browser.handled, [key_event("down"), TICK, key_event("enter"), SHUTDOWN]
        )
        self.assertEqual(self.shutdowns, 1)
        self.assertFalse(browser.running)
        self.assertTrue(channel.closed)
        self.assertEqual(browser.selected, 1)
        self.assertEqual(browser.status, "a.txt is a file")
        # initial draw, then one per key; the tick has nothing new to show
        self.assertEqual(len(self.frames), 3)

    async def test_events_after_shutdown_are_ignored(self) -> None:
        browser = await self._started()
        self.assertFalse(await browser.handle_event(SHUTDOWN))
        self.assertFalse(await browser.handle_event(key_event("down")))
        self.assertEqual(browser.selected, 0)
        self.assertEqual(self.frames, [])

    async def test_listing_shows_one_level(self) -> None:
        browser = await self._started()
        self.assertEqual(
            [(entry.kind, entry.name) for entry in browser.entries],
            [(EntryKind.DIRECTORY, "docs/"), (EntryKind.FILE, "a.txt")],
        )

    async def test_enter_and_go_up_restore_cursor(self) -> None:
        browser = await self._started()
        await self._press(browser, "enter")
        self.assertEqual(browser.location, "docs/")
        self.assertEqual(
            [entry.name for entry in browser.entries], ["deep/", "x.txt", "y.txt"]
        )
        await self._press(browser, "enter")
        self.assertEqual(browser.location, "docs/deep/")
        await self._press(browser, "backspace")
        self.assertEqual(browser.location, "docs/")
        self.assertEqual(browser.selected_entry().name, "deep/")
        await self._press(browser, "backspace", "backspace")
        self.assertEqual(browser.location, "")
        self.assertEqual(browser.status, "Already at the top")

    async def test_cursor_is_clamped(self) -> None:
        browser = await self._started()
        await self._press(browser, "up", "down", "down", "down")
        self.assertEqual(browser.selected, 1)
        await self._press(browser, "up", "up")
        self.assertEqual(browser.selected, 0)

    async def test_provider_error_becomes_status(self) -> None:
        browser = await self._started()
        self.remote.denied.add("docs/")
        await self._press(browser, "enter")
        self.assertEqual(browser.location, "")
        self.assertEqual(browser.mode, Mode.IDLE)
        self.assertIn("Access denied", browser.status)
        self.assertTrue(browser.running)
        self.assertIn("Access denied", self.frames[-1].status)

    async def test_delete_requires_confirmation(self) -> None:
        browser = await self._started()
        await self._press(browser, "down", "x")
        self.assertEqual(browser.mode, Mode.CONFIRMING_DELETE)
        self.assertEqual(browser.status, "Delete a.txt? (y/n)")
        self.assertIn("a.txt", self.remote.files)
        await self._press(browser, "y")
        self.assertNotIn("a.txt", self.remote.files)
        self.assertEqual(browser.mode, Mode.IDLE)
        self.assertEqual([entry.name for entry in browser.entries], ["docs/"])
        self.assertEqual(browser.selected, 0)
        self.assertEqual(browser.status, "Deleted a.txt")

    async def test_delete_cancelled_by_other_key(self) -> None:
        browser = await self._started()
        await self._press(browser, "down", "x", "n")
        self.assertEqual(browser.mode, Mode.IDLE)
        self.assertIn("a.txt", self.remote.files)
        self.assertEqual(browser.status, "Delete of a.txt cancelled")

    async def test_delete_directory_is_refused(self) -> None:
        browser = await self._started()
        await self._press(browser, "x")
        self.assertEqual(browser.mode, Mode.IDLE)
        self.assertEqual(browser.status, "Only files can be deleted: docs/")
        await self._press(browser, "y")
        self.assertIn("docs/x.txt", self.remote.files)

    async def test_bucket_directory_delete_is_refused(self) -> None:
        client = MemoryS3Client({"sub/a.txt": b"a"})
        bucket = ObjectStoreProvider("bucket-a", client=client)
        browser = await self._started([bucket, self.local])
        await self._press(browser, "x", "y")
        self.assertEqual(browser.status, "Only files can be deleted: sub/")
        self.assertEqual(client.objects, {"sub/a.txt": b"a"})
        self.assertEqual([entry.name for entry in browser.entries], ["sub/"])

    async def test_unknown_profile_leaves_loop_running(self) -> None:
        bucket = ObjectStoreProvider("bucket-a", profile="no-such-profile")
        channel = EventChannel()
        channel.send(key_event("down"))
        channel.send(SHUTDOWN)
        browser = self._browser([bucket, self.local], cls=_RecordingBrowser)
        missing = ProfileNotFound(profile="no-such-profile")
        with patch("s3tui.objectstore.boto3.session.Session", side_effect=missing):
            await browser.run(channel)
        self.assertEqual(browser.handled, [key_event("down"), SHUTDOWN])
        self.assertIn("ProfileNotFound", self.frames[0].status)
        self.assertEqual(browser.mode, Mode.IDLE)
        self.assertEqual(self.shutdowns, 1)

    async def test_download_then_upload(self) -> None:
        browser = await self._started()
        await self._press(browser, "enter", "down")
        self.assertEqual(browser.selected_entry().name, "x.txt")
        await self._press(browser, "d")
        self.assertEqual(self.local.files["x.txt"], b"x" * 10)
        self.assertTrue(browser.status.startswith("Downloaded x.txt"))
        self.assertEqual(browser.progress.done, 10)
        self.assertTrue(any(frame.mode is Mode.TRANSFERRING for frame in self.frames))

        await self._press(browser, "tab")
        self.assertIs(browser.provider, self.local)
        self.assertEqual(
            [entry.name for entry in browser.entries], ["notes.md", "x.txt"]
        )
        await self._press(browser, "d")
        self.assertEqual(self.remote.files["docs/notes.md"], b"# notes")
        self.assertTrue(browser.status.startswith("Uploaded notes.md"))

    async def test_transfer_refuses_directories(self) -> None:
        browser = await self._started()
        await self._press(browser, "d")
        self.assertIn("Only files can be transferred", browser.status)
        self.assertEqual(self.local.files, {"notes.md": b"# notes"})

    async def test_switch_keeps_location_per_provider(self) -> None:
        browser = await self._started()
        await self._press(browser, "enter", "tab")
        self.assertEqual(browser.location, "")
        self.assertEqual(self.frames[-1].title, "local")
        await self._press(browser, "tab")
        self.assertEqual(browser.location, "docs/")
        self.assertEqual(self.remote.list_calls[-1], "docs/")

    async def test_refresh_relists(self) -> None:
        browser = await self._started()
        self.remote.files["b.txt"] = b"b"
        await self._press(browser, "down", "r")
        self.assertEqual(
            [entry.name for entry in browser.entries], ["docs/", "a.txt", "b.txt"]
        )
        self.assertEqual(browser.selected_entry().name, "a.txt")

    async def test_unbound_key_only_redraws(self) -> None:
        browser = await self._started()
        await self._press(browser, "F12")
        self.assertEqual(len(self.frames), 1)
        self.assertEqual(browser.selected, 0)

    async def test_tick_redraws_only_on_progress_change(self) -> None:
        browser = await self._started()
        browser.progress = TransferProgress(name="big.bin", total=100)
        browser.progress.update(10)
        await browser.handle_event(TICK)
        self.assertEqual(len(self.frames), 1)
        await browser.handle_event(TICK)
        self.assertEqual(len(self.frames), 1)
        browser.progress.update(20)
        await browser.handle_event(TICK)
        self.assertEqual(len(self.frames), 2)

    async def test_transfer_label_depends_on_active_provider(self) -> None:
        browser = await self._started()
        self.assertEqual(browser.frame().transfer_label, "Download")
        await self._press(browser, "tab")
        self.assertEqual(browser.frame().transfer_label, "Upload")
        single = await self._started([self.local])
        self.assertEqual(single.transfer_label(), "")

    def test_requires_a_provider(self) -> None:
        with self.assertRaises(ValueError):
            Browser([], render=lambda frame: None)


if __name__ == "__main__":
    unittest.main()

import asyncio
import unittest

from local_assets.config import AssetsConfig
from local_assets.errors import FailureReason, StorageError, TransportError
from local_assets.images import Fetcher
from local_assets.models import NoteFile
from tests.fakes import (
    FixedClock,
    MemoryStorage,
    RecordingSleep,
    ScriptedTransport,
    image_response,
    status_response,
)

URL = "https://img.example.com/pics/x.png"


class TestFetcher(unittest.IsolatedAsyncioTestCase):
    def make_fetcher(self, script, config=None, storage=None):
        self.transport = ScriptedTransport(script)
        self.storage = storage or MemoryStorage({"MyNote.md": b""})
        self.sleep = RecordingSleep()
        return Fetcher(
            self.transport,
            self.storage,
            config or AssetsConfig(),
            sleep=self.sleep,
            clock=FixedClock(1700000000000),
        )

    async def test_success_writes_into_asset_folder(self):
        fetcher = self.make_fetcher({URL: [image_response(b"PNGDATA")]})
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertTrue(result.ok)
        self.assertIsNone(result.error)
        self.assertEqual(result.local_path, "assets/MyNote/x_1700000000001.png")
        self.assertEqual(self.storage.files["assets/MyNote/x_1700000000001.png"], b"PNGDATA")
        self.assertIn("assets/MyNote", self.storage.folders)
        self.assertEqual(len(self.transport.requests), 1)

    async def test_relative_path_for_note_in_folder(self):
        storage = MemoryStorage({"notes/Note.md": b""})
        fetcher = self.make_fetcher({URL: [image_response()]}, storage=storage)
        result = await fetcher.download(URL, NoteFile("notes/Note.md"))
        self.assertEqual(result.local_path, "assets/Note/x_1700000000001.png")
        self.assertIn("notes/assets/Note/x_1700000000001.png", storage.files)

    async def test_vault_path_when_relative_mode_off(self):
        storage = MemoryStorage({"notes/Note.md": b""})
        config = AssetsConfig(use_relative_path=False)
        fetcher = self.make_fetcher({URL: [image_response()]}, config=config, storage=storage)
        result = await fetcher.download(URL, NoteFile("notes/Note.md"))
        self.assertEqual(result.local_path, "notes/assets/Note/x_1700000000001.png")

    async def test_crafted_format_parameter_stays_in_asset_folder(self):
        url = "https://evil.example/a?format=/../../../../escaped"
        fetcher = self.make_fetcher({url: [image_response()]})
        result = await fetcher.download(url, NoteFile("MyNote.md"))
        self.assertEqual(result.local_path, "assets/MyNote/a_1700000000001.png")
        self.assertEqual(
            [path for path in self.storage.files if path != "MyNote.md"],
            ["assets/MyNote/a_1700000000001.png"],
        )

    async def test_forbidden_three_times_exhausts_budget(self):
        fetcher = self.make_fetcher({URL: [status_response(403)]})
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertFalse(result.ok)
        self.assertIsNone(result.local_path)
        self.assertEqual(result.error.reason, FailureReason.HTTP_FORBIDDEN)
        self.assertEqual(result.error.status, 403)
        self.assertEqual(len(self.transport.requests), 3)
        self.assertEqual(self.sleep.calls, [1.0, 2.0])
        self.assertEqual(len(result.attempts), 3)
        self.assertEqual(self.storage.folders, set())

    async def test_referer_rotates_across_attempts(self):
        fetcher = self.make_fetcher({URL: [status_response(403)]})
        await fetcher.download(URL, NoteFile("MyNote.md"))
        referers = [headers["Referer"] for headers in self.transport.calls_for(URL)]
        self.assertEqual(referers, ["", URL, ""])

    async def test_non_image_content_type_is_not_retried(self):
        fetcher = self.make_fetcher({URL: [image_response(b"<html>", "text/html")]})
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.INVALID_CONTENT_TYPE)
        self.assertEqual(result.error.content_type, "text/html")
        self.assertEqual(len(self.transport.requests), 1)
        self.assertEqual(self.sleep.calls, [])

    async def test_missing_content_type_is_terminal(self):
        response = image_response()
        response.headers.clear()
        fetcher = self.make_fetcher({URL: [response]})
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.INVALID_CONTENT_TYPE)
        self.assertEqual(len(self.transport.requests), 1)

    async def test_server_error_retries_with_short_backoff_then_succeeds(self):
        fetcher = self.make_fetcher(
            {URL: [status_response(500), status_response(502), image_response()]}
        )
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertTrue(result.ok)
        self.assertEqual(self.sleep.calls, [0.5, 1.0])

    async def test_last_error_is_reported(self):
        fetcher = self.make_fetcher(
            {URL: [status_response(403), status_response(403), status_response(404)]}
        )
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.HTTP_STATUS)
        self.assertEqual(result.error.status, 404)

    async def test_network_failure_retried_with_long_backoff(self):
        fetcher = self.make_fetcher({URL: [TransportError("connection reset")]})
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.NETWORK)
        self.assertEqual(self.sleep.calls, [1.0, 2.0])

    async def test_timeout_counts_against_budget(self):
        class SlowTransport:
            calls = 0

            async def request(self, url, method, headers, timeout):
                SlowTransport.calls += 1
                await asyncio.sleep(1)

        storage = MemoryStorage({"MyNote.md": b""})
        sleep = RecordingSleep()
        fetcher = Fetcher(SlowTransport(), storage, AssetsConfig(download_timeout=10), sleep=sleep)
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.TIMEOUT)
        self.assertEqual(SlowTransport.calls, 3)

    async def test_folder_creation_failure_raises(self):
        storage = MemoryStorage({"MyNote.md": b""})
        storage.fail_mkdir = True
        fetcher = self.make_fetcher({URL: [image_response()]}, storage=storage)
        with self.assertRaises(StorageError):
            await fetcher.download(URL, NoteFile("MyNote.md"))

    async def test_write_failure_is_a_storage_error_result(self):
        storage = MemoryStorage({"MyNote.md": b""})
        storage.fail_write = True
        fetcher = self.make_fetcher({URL: [image_response()]}, storage=storage)
        result = await fetcher.download(URL, NoteFile("MyNote.md"))
        self.assertEqual(result.error.reason, FailureReason.STORAGE)
        self.assertEqual(len(self.transport.requests), 1)


if __name__ == "__main__":
    unittest.main()

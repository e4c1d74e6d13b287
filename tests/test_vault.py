import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

from local_assets.dialogs import ExternalImagesDialog
from local_assets.errors import TransportError
from local_assets.models import DownloadResult, NoteFile
from local_assets.vault import ConsoleInterface, LocalVault, RequestsTransport


class TestLocalVault(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.vault = LocalVault(self.root)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, relative, data=b"x"):
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def test_write_and_list(self):
        await self.vault.mkdir("assets/Note")
        written = await self.vault.write_binary("assets/Note/a.png", b"png")
        self.write("assets/Note/sub/nested.png")
        self.assertEqual(written, "assets/Note/a.png")
        self.assertTrue(await self.vault.is_folder("assets/Note"))
        self.assertEqual(await self.vault.list_directory("assets/Note"), ["assets/Note/a.png"])

    async def test_note_text_round_trip(self):
        note = NoteFile("notes/Note.md")
        self.write(note.path, b"")
        await self.vault.write_text(note, "![[a.png]]")
        self.assertEqual(await self.vault.read_text(note), "![[a.png]]")

    async def test_note_accepts_absolute_paths(self):
        self.write("notes/Note.md")
        self.assertEqual(self.vault.note(str(self.root / "notes/Note.md")).path, "notes/Note.md")
        self.assertEqual(self.vault.note("./notes/Note.md").path, "notes/Note.md")

    async def test_move_and_remove_folder(self):
        self.write("assets/Old/a.png")
        await self.vault.move("assets/Old", "assets/New")
        self.assertTrue(await self.vault.exists("assets/New/a.png"))
        self.assertFalse(await self.vault.exists("assets/Old"))
        await self.vault.remove_recursive("assets/New")
        self.assertFalse(await self.vault.exists("assets/New"))

    async def test_trash_keeps_both_copies_of_same_name(self):
        self.write("assets/A/x.png", b"1")
        self.write("assets/B/x.png", b"2")
        await self.vault.trash("assets/A/x.png")
        await self.vault.trash("assets/B/x.png")
        self.assertEqual((self.root / ".trash/x.png").read_bytes(), b"1")
        self.assertEqual((self.root / ".trash/x 1.png").read_bytes(), b"2")
        self.assertFalse(await self.vault.exists("assets/A/x.png"))

    async def test_paths_outside_the_vault_are_refused(self):
        with self.assertRaises(OSError):
            await self.vault.write_binary("../escaped.png", b"x")
        with self.assertRaises(OSError):
            await self.vault.mkdir("assets/../../outside")
        self.assertFalse((self.root.parent / "escaped.png").exists())
        self.assertFalse((self.root.parent / "outside").exists())

    async def test_resolve_embedded_path(self):
        self.write("notes/assets/Note/a.png")
        self.write("media/shared.png")
        self.write(".trash/gone.png")
        note = NoteFile("notes/Note.md")
        resolve = self.vault.resolve_embedded_path
        self.assertEqual(resolve("assets/Note/a.png", note), "notes/assets/Note/a.png")
        self.assertEqual(resolve("./assets/Note/a.png", note), "notes/assets/Note/a.png")
        self.assertEqual(resolve("notes/assets/Note/a.png", note), "notes/assets/Note/a.png")
        self.assertEqual(resolve("shared.png", note), "media/shared.png")
        self.assertIsNone(resolve("gone.png", note))
        self.assertIsNone(resolve("", note))


class TestConsoleInterface(unittest.IsolatedAsyncioTestCase):
    async def test_confirm_lists_files_and_runs_callback(self):
        echoed = []
        confirmed = []
        ui = ConsoleInterface(ask=lambda prompt: "y", echo=echoed.append)

        async def on_confirm():
            confirmed.append(True)

        paths = [f"assets/Note/{index}.png" for index in range(20)]
        await ui.confirm("Delete unused images?", paths, on_confirm)
        self.assertEqual(confirmed, [True])
        self.assertEqual(echoed[0], "Delete unused images?")
        self.assertIn("- 0.png", echoed)
        self.assertNotIn("- 15.png", echoed)
        self.assertEqual(echoed[-1], "...20 files in total.")

    async def test_declined_confirmation(self):
        confirmed = []
        ui = ConsoleInterface(ask=lambda prompt: "n", echo=lambda line: None)

        async def on_confirm():
            confirmed.append(True)

        await ui.confirm("Delete unused images?", ["a.png"], on_confirm)
        self.assertEqual(confirmed, [])

    async def test_assume_yes_never_prompts(self):
        def ask(prompt):
            raise AssertionError("prompted")

        downloaded = []

        async def on_download(url):
            downloaded.append(url)
            return DownloadResult(url=url, local_path="assets/Note/a.png")

        async def on_replace(mapping):
            return True

        dialog = ExternalImagesDialog(["https://a.example/a.png"], on_download, on_replace)
        ui = ConsoleInterface(assume_yes=True, ask=ask, echo=lambda line: None)
        await ui.present_external_images(dialog)
        self.assertEqual(downloaded, ["https://a.example/a.png"])
        self.assertTrue(dialog.finished)


class TestRequestsTransport(unittest.IsolatedAsyncioTestCase):
    async def test_response_headers_lowercased(self):
        response = MagicMock()
        response.status_code = 200
        response.headers = {"Content-Type": "image/png"}
        response.content = b"data"
        session = MagicMock()
        session.request.return_value = response

        transport = RequestsTransport(session)
        result = await transport.request("https://a.example/x.png", "GET", {"Referer": ""}, 5.0)

        self.assertEqual(result.status, 200)
        self.assertEqual(result.content_type, "image/png")
        self.assertEqual(result.body, b"data")
        session.request.assert_called_once_with(
            "GET", "https://a.example/x.png", headers={"Referer": ""}, timeout=5.0
        )

    async def test_timeout_is_flagged(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(TransportError) as ctx:
            await RequestsTransport(session).request("https://a.example/x.png", "GET", {}, 1.0)
        self.assertTrue(ctx.exception.timeout)

    async def test_connection_error(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("reset")
        with self.assertRaises(TransportError) as ctx:
            await RequestsTransport(session).request("https://a.example/x.png", "GET", {}, 1.0)
        self.assertFalse(ctx.exception.timeout)

    async def test_only_get_supported(self):
        with self.assertRaises(ValueError):
            await RequestsTransport(MagicMock()).request("https://a.example/", "POST", {}, 1.0)


if __name__ == "__main__":
    unittest.main()

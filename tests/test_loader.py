import asyncio
import unittest

from csschunk.core.loader import LOADED, CssChunkLoadError, CssChunkLoader, StyleDocument, StyleTag
from csschunk.core.skins import build_skin_map


class _Network:
    def __init__(self) -> None:
        self.failing: dict[str, BaseException] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def fail(self, href: str, exc: BaseException | None = None) -> None:
        self.failing[href] = exc or ConnectionError(f"failed to fetch {href}")

    async def fetch(self, tag: StyleTag) -> None:
        gate = self.gates.get(tag.href or "")
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if tag.href in self.failing:
            raise self.failing[tag.href]


def _href(chunk_id: str, skin: str) -> str:
    prefix = f"{skin}@" if skin else ""
    return f"css/{prefix}{chunk_id}.css"


class TestCssChunkLoader(unittest.IsolatedAsyncioTestCase):
    def _loader(self, document: StyleDocument, **kwargs) -> CssChunkLoader:
        kwargs.setdefault("css_chunks", {"1": 1})
        return CssChunkLoader(document, href_for=_href, public_path="/", **kwargs)

    async def test_concurrent_requests_share_one_tag(self) -> None:
        network = _Network()
        network.gates["/css/1.css"] = asyncio.Event()
        document = StyleDocument(network.fetch)
        loader = self._loader(document)

        first = loader.request_load("1")
        second = loader.request_load(1)
        self.assertIsInstance(loader.installed["1"], asyncio.Task)

        await asyncio.sleep(0)
        network.gates["/css/1.css"].set()
        await asyncio.gather(first, second)

        self.assertEqual([tag.href for tag in document.inserted], ["/css/1.css"])
        self.assertEqual(loader.installed["1"], LOADED)

        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 1)

    async def test_requester_timeout_does_not_stop_shared_load(self) -> None:
        network = _Network()
        network.gates["/css/1.css"] = asyncio.Event()
        document = StyleDocument(network.fetch)
        loader = self._loader(document)

        first = loader.request_load("1")
        second = loader.request_load("1")
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(first, 0.01)

        network.gates["/css/1.css"].set()
        await second

        self.assertEqual(loader.installed["1"], LOADED)
        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 1)

    async def test_cancelled_load_is_retryable(self) -> None:
        network = _Network()
        network.gates["/css/1.css"] = asyncio.Event()
        document = StyleDocument(network.fetch)
        loader = self._loader(document)

        handle = loader.request_load("1")
        await asyncio.sleep(0)
        self.assertEqual(len(document.head), 1)
        loader.installed["1"].cancel()
        with self.assertRaises(asyncio.CancelledError):
            await handle

        self.assertNotIn("1", loader.installed)
        self.assertEqual(document.head, [])

        del network.gates["/css/1.css"]
        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 2)
        self.assertEqual(loader.installed["1"], LOADED)

    async def test_load_cancelled_before_start_is_retryable(self) -> None:
        document = StyleDocument(_Network().fetch)
        loader = self._loader(document)

        handle = loader.request_load("1")
        loader.installed["1"].cancel()
        with self.assertRaises(asyncio.CancelledError):
            await handle
        self.assertEqual(document.inserted, [])

        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 1)
        self.assertEqual(loader.installed["1"], LOADED)

    async def test_failed_load_is_retryable(self) -> None:
        network = _Network()
        network.fail("/css/1.css")
        document = StyleDocument(network.fetch)
        loader = self._loader(document)

        with self.assertRaises(CssChunkLoadError) as ctx:
            await loader.request_load("1")
        self.assertEqual(ctx.exception.code, "CSS_CHUNK_LOAD_FAILED")
        self.assertEqual(ctx.exception.request, "/css/1.css")
        self.assertNotIn("1", loader.installed)
        self.assertEqual(document.head, [])

        network.failing.clear()
        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 2)
        self.assertEqual(loader.installed["1"], LOADED)

    async def test_unexpected_fetch_error_is_wrapped_and_retryable(self) -> None:
        network = _Network()
        network.fail("/css/1.css", RuntimeError("renderer crashed"))
        document = StyleDocument(network.fetch)
        loader = self._loader(document)

        with self.assertRaises(CssChunkLoadError) as ctx:
            await loader.request_load("1")
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertNotIn("1", loader.installed)
        self.assertEqual(document.head, [])

        network.failing.clear()
        await loader.request_load("1")
        self.assertEqual(len(document.inserted), 2)
        self.assertEqual(loader.installed["1"], LOADED)

    async def test_first_of_several_failures_is_reported(self) -> None:
        skin_map = build_skin_map([("1", ["a"])])
        network = _Network()
        network.fail("/css/1.css")
        network.fail("/css/a@1.css")
        document = StyleDocument(network.fetch)
        loader = self._loader(
            document,
            css_chunks={"1": 3},
            skin_map=skin_map,
            active_skin=lambda: "a",
        )

        with self.assertRaises(CssChunkLoadError) as ctx:
            await loader.request_load("1")
        self.assertEqual(ctx.exception.request, "/css/1.css")
        self.assertNotIn("1", loader.installed)
        self.assertEqual(document.head, [])

    async def test_existing_tags_are_reused(self) -> None:
        network = _Network()
        document = StyleDocument(
            network.fetch,
            tags=[
                StyleTag(href="/css/1.css"),
                StyleTag(tag_name="style", data_href="css/2.css"),
                StyleTag(href="/css/3.css", rel="preload"),
            ],
        )
        loader = self._loader(document, css_chunks={"1": 1, "2": 1, "3": 1})

        await loader.request_load("1")
        await loader.request_load("2")
        self.assertEqual(document.inserted, [])

        await loader.request_load("3")
        self.assertEqual([tag.href for tag in document.inserted], ["/css/3.css"])

    async def test_chunks_without_css_complete_immediately(self) -> None:
        document = StyleDocument(_Network().fetch)
        loader = self._loader(document)

        await loader.request_load("9")
        self.assertEqual(document.inserted, [])
        self.assertNotIn("9", loader.installed)

    async def test_skins_load_primary_and_alternates(self) -> None:
        skin_map = build_skin_map([("1", ["a", "b"]), ("2", ["a", "b"]), ("3", ["a"])])
        document = StyleDocument(_Network().fetch)
        loader = self._loader(
            document,
            css_chunks={"1": 2, "2": 2, "3": 3},
            skin_map=skin_map,
            active_skin=lambda: "b",
        )

        await loader.request_load("1")
        await loader.wait_alternates()
        self.assertEqual(
            [(tag.href, tag.rel, tag.title, tag.disabled) for tag in document.inserted],
            [
                ("/css/a@1.css", "alternate stylesheet", "a", True),
                ("/css/b@1.css", "stylesheet", "b", False),
            ],
        )

        await loader.request_load("3")
        self.assertEqual(
            [tag.href for tag in document.inserted[2:]],
            ["/css/3.css", "/css/a@3.css"],
        )
        self.assertEqual(document.inserted[3].rel, "alternate stylesheet")

    async def test_alternates_do_not_hold_up_the_chunk(self) -> None:
        skin_map = build_skin_map([("1", ["a", "b"])])
        network = _Network()
        network.gates["/css/a@1.css"] = asyncio.Event()
        document = StyleDocument(network.fetch)
        loader = self._loader(
            document,
            css_chunks={"1": 2},
            skin_map=skin_map,
            active_skin=lambda: "b",
        )

        await loader.request_load("1")
        self.assertEqual(loader.installed["1"], LOADED)
        self.assertEqual(len(loader.alternates), 1)

        network.gates["/css/a@1.css"].set()
        await loader.wait_alternates()
        self.assertEqual(loader.alternates, set())

    async def test_default_skin_used_without_selection(self) -> None:
        skin_map = build_skin_map([("1", ["default", "dark"])])
        document = StyleDocument(_Network().fetch)
        loader = self._loader(document, css_chunks={"1": 2}, skin_map=skin_map)

        await loader.request_load("1")
        primary = [tag.title for tag in document.inserted if tag.rel == "stylesheet"]
        self.assertEqual(primary, ["default"])

    async def test_alternate_failure_is_logged_not_raised(self) -> None:
        skin_map = build_skin_map([("1", ["a", "b"])])
        network = _Network()
        network.fail("/css/a@1.css")
        document = StyleDocument(network.fetch)
        loader = self._loader(
            document,
            css_chunks={"1": 2},
            skin_map=skin_map,
            active_skin=lambda: "b",
        )

        with self.assertLogs("csschunk.core.loader", level="WARNING") as logs:
            await loader.request_load("1")
            await loader.wait_alternates()
        self.assertIn("alternate skin a", logs.output[0])
        self.assertEqual(loader.installed["1"], LOADED)
        self.assertEqual([tag.href for tag in document.head], ["/css/b@1.css"])

    async def test_primary_skin_failure_rejects(self) -> None:
        skin_map = build_skin_map([("1", ["a", "b"])])
        network = _Network()
        network.fail("/css/b@1.css")
        document = StyleDocument(network.fetch)
        loader = self._loader(
            document,
            css_chunks={"1": 2},
            skin_map=skin_map,
            active_skin=lambda: "b",
        )

        with self.assertRaises(CssChunkLoadError) as ctx:
            await loader.request_load("1")
        self.assertEqual(ctx.exception.request, "/css/b@1.css")
        self.assertNotIn("1", loader.installed)

    async def test_cross_origin_applies_to_foreign_urls_only(self) -> None:
        network = _Network()
        cases = [
            ("https://cdn.example/", "anonymous"),
            ("https://app.example/", None),
            ("/static/", None),
        ]
        for public_path, expected in cases:
            with self.subTest(public_path=public_path):
                document = StyleDocument(network.fetch, origin="https://app.example")
                loader = CssChunkLoader(
                    document,
                    css_chunks={"1": 1},
                    href_for=_href,
                    public_path=public_path,
                    cross_origin_loading="anonymous",
                )
                await loader.request_load("1")
                self.assertEqual(document.inserted[0].cross_origin, expected)


if __name__ == "__main__":
    unittest.main()

import asyncio

import pytest

from django_async_ssr import Suspense, h, lazy, render_to_string
from django_async_ssr.testing import PARAMETRIZE_FALLBACK_FAST, ssr_test

from .testutils import setup_test_config

setup_test_config()


def Greeting(props):  # noqa: N802
    return h("p", None, "Hello ", props["name"])


@ssr_test(parametrize=PARAMETRIZE_FALLBACK_FAST)
class TestLazy:
    async def test_async_loader(self, ssr_settings):
        async def load():
            await asyncio.sleep(0.01)
            return Greeting

        LazyGreeting = lazy(load)  # noqa: N806
        html = await render_to_string(h(Suspense, {"fallback": "Loading"}, h(LazyGreeting, {"name": "Ada"})))
        assert html == '<p data-ssr-root="">Hello <!-- -->Ada</p>'
        assert LazyGreeting.loaded

    async def test_sync_loader(self, ssr_settings):
        LazyGreeting = lazy(lambda: Greeting)  # noqa: N806
        html = await render_to_string(h(Suspense, {"fallback": "Loading"}, h(LazyGreeting, {"name": "Ada"})))
        assert html == '<p data-ssr-root="">Hello <!-- -->Ada</p>'

    async def test_loaded_once_for_many_elements(self, ssr_settings):
        calls = []

        async def load():
            calls.append("load")
            return Greeting

        LazyGreeting = lazy(load)  # noqa: N806
        html = await render_to_string(
            h(
                Suspense,
                {"fallback": "Loading"},
                h(LazyGreeting, {"name": "A"}),
                h(LazyGreeting, {"name": "B"}),
            )
        )
        assert html == '<p data-ssr-root="">Hello <!-- -->A</p><p data-ssr-root="">Hello <!-- -->B</p>'
        assert calls == ["load"]

    async def test_loaded_component_renders_without_suspending(self, ssr_settings):
        LazyGreeting = lazy(lambda: Greeting)  # noqa: N806
        await render_to_string(h(Suspense, {"fallback": "Loading"}, h(LazyGreeting, {"name": "A"})))

        # Second render doesn't need a boundary
        html = await render_to_string(h(LazyGreeting, {"name": "B"}))
        assert html == '<p data-ssr-root="">Hello <!-- -->B</p>'

    async def test_no_ssr(self, ssr_settings):
        calls = []

        def load():
            calls.append("load")
            return Greeting

        LazyGreeting = lazy(load, ssr=False)  # noqa: N806
        html = await render_to_string(
            h(Suspense, {"fallback": h("span", None, "Loading")}, h(LazyGreeting, {"name": "Ada"})),
        )
        assert html == '<span data-ssr-root="">Loading</span>'
        assert calls == []

    async def test_loader_error(self, ssr_settings):
        def load():
            raise ImportError("missing module")

        LazyGreeting = lazy(load)  # noqa: N806
        with pytest.raises(ImportError, match="missing module"):
            await render_to_string(h(Suspense, {"fallback": "Loading"}, h(LazyGreeting, {"name": "Ada"})))

    async def test_display_name(self, ssr_settings):
        assert lazy(lambda: Greeting, name="LazyGreeting").display_name == "LazyGreeting"
        assert lazy(lambda: Greeting).display_name == "Lazy"

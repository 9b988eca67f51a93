import logging

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from django_async_ssr import SsrSettings, Suspense, h, render_to_string
from django_async_ssr.app_settings import app_settings
from django_async_ssr.testing import ssr_test

from .testutils import ClientOnly, Reader, Resource, setup_test_config

setup_test_config()


def make_tree(rendered):
    def Sibling(props):  # noqa: N802
        rendered.append("sibling")
        return "After"

    client = Resource(no_ssr=True)
    return h(Suspense, {"fallback": "Loading"}, h(ClientOnly, {"resource": client}), h(Sibling, {}))


@ssr_test
class TestAppSettings:
    def test_defaults(self):
        assert app_settings.FALLBACK_FAST is False
        assert app_settings.SEPARATOR == "<!-- -->"
        assert app_settings.ROOT_ATTRIBUTE == "data-ssr-root"

    @ssr_test(ssr_settings={"root_attribute": "data-root"})
    async def test_root_attribute(self):
        html = await render_to_string(h("p", None, "x"))
        assert html == '<p data-root="">x</p>'

    @ssr_test(ssr_settings={"separator": "<!--|-->"})
    async def test_separator(self):
        html = await render_to_string(h("p", None, "a", "b"))
        assert html == '<p data-ssr-root="">a<!--|-->b</p>'

    @ssr_test(ssr_settings={"fallback_fast": True})
    async def test_fallback_fast_from_settings(self):
        rendered = []
        html = await render_to_string(make_tree(rendered))
        assert html == "Loading"
        assert rendered == []

    @ssr_test(ssr_settings={"fallback_fast": True})
    async def test_render_option_overrides_settings(self):
        rendered = []
        html = await render_to_string(make_tree(rendered), {"fallback_fast": False})
        assert html == "Loading"
        assert rendered == ["sibling"]

    def test_named_tuple_settings(self):
        with override_settings(ASYNC_SSR=SsrSettings(separator="|")):
            assert app_settings.SEPARATOR == "|"
            assert app_settings.FALLBACK_FAST is False

    def test_unknown_key_raises(self):
        with override_settings(ASYNC_SSR={"unknown": 1}):
            with pytest.raises(ImproperlyConfigured, match="unknown"):
                app_settings.SEPARATOR  # noqa: B018

    def test_invalid_type_raises(self):
        with override_settings(ASYNC_SSR={"fallback_fast": "yes"}):
            with pytest.raises(ImproperlyConfigured, match="fallback_fast"):
                app_settings.FALLBACK_FAST  # noqa: B018

    def test_invalid_settings_object_raises(self):
        with override_settings(ASYNC_SSR=["fallback_fast"]):
            with pytest.raises(ImproperlyConfigured, match="must be a dict"):
                app_settings.FALLBACK_FAST  # noqa: B018

    def test_empty_root_attribute_raises(self):
        with override_settings(ASYNC_SSR={"root_attribute": ""}):
            with pytest.raises(ImproperlyConfigured, match="root_attribute"):
                app_settings.ROOT_ATTRIBUTE  # noqa: B018


@ssr_test
class TestLogging:
    async def test_trace_logs(self, caplog):
        caplog.set_level(5, logger="django_async_ssr")
        resource = Resource("Loaded", delay=0.01)

        await render_to_string(h(Suspense, {"fallback": "Loading"}, h(Reader, {"resource": resource})))

        messages = [record.getMessage() for record in caplog.records]
        assert any(msg.startswith("CREATE NODE: 'suspense'") for msg in messages)
        assert any(msg.startswith("CREATE NODE: 'deferred'") for msg in messages)
        assert any(msg.startswith("RESUME NODE: 'deferred'") for msg in messages)
        assert any(msg.startswith("START RENDER: ") for msg in messages)

    async def test_error_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="django_async_ssr")

        def Broken(props):  # noqa: N802
            raise RuntimeError("broken")

        with pytest.raises(RuntimeError):
            await render_to_string(h(Broken, {}))

        assert any("failed: RuntimeError('broken')" in record.getMessage() for record in caplog.records)

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from asgiref.sync import async_to_sync
from django.core.exceptions import ImproperlyConfigured
from django.utils.safestring import SafeString, mark_safe

from django_async_ssr.renderer import AsyncRenderer


@dataclass(frozen=True)
class RenderOptions:
    fallback_fast: bool | None = None
    """
    If `True`, as soon as a boundary is known to render its fallback, the rest
    of its content is skipped, and its pending deferred values are not waited for.

    If `False`, the content is still rendered, only to notify the deferred values
    inside it that they were not mounted.

    Defaults to `ASYNC_SSR["fallback_fast"]`, which defaults to `False`.
    """


RenderOptionsInput = RenderOptions | Mapping[str, Any] | None


def _to_options(options: RenderOptionsInput) -> RenderOptions:
    if options is None:
        return RenderOptions()
    if isinstance(options, RenderOptions):
        return options
    if not isinstance(options, Mapping):
        raise ImproperlyConfigured(
            f"Render options must be a RenderOptions instance or a dict, got {type(options).__name__}"
        )

    valid_keys = {field.name for field in fields(RenderOptions)}
    invalid_keys = set(options) - valid_keys
    if invalid_keys:
        raise ImproperlyConfigured(f"Invalid render options: {', '.join(sorted(invalid_keys))}")

    fallback_fast = options.get("fallback_fast")
    if fallback_fast is not None and not isinstance(fallback_fast, bool):
        raise ImproperlyConfigured(f"Render option 'fallback_fast' must be a bool, got {fallback_fast!r}")

    return RenderOptions(**options)


async def _render(content: Any, options: RenderOptionsInput, make_static_markup: bool) -> SafeString:
    opts = _to_options(options)
    renderer = AsyncRenderer(make_static_markup=make_static_markup, fallback_fast=opts.fallback_fast)
    html = await renderer.render(content)
    return mark_safe(html)


async def render_to_string(content: Any, options: RenderOptionsInput = None) -> SafeString:
    """
    Render the content to HTML, waiting for all components that raised
    a [`Deferred`](api.md#django_async_ssr.Deferred).

    The output marks top-level elements with the `data-ssr-root` attribute,
    and separates adjacent text with `<!-- -->`, so that it can be hydrated on the client.

    ```python
    html = await render_to_string(
        h(Suspense, {"fallback": "Loading..."}, h(UserProfile, {"user_id": 1})),
    )
    ```

    Raises the first error raised by a component or by a deferred value.
    """
    return await _render(content, options, make_static_markup=False)


async def render_to_static_markup(content: Any, options: RenderOptionsInput = None) -> SafeString:
    """
    Same as [`render_to_string()`](api.md#django_async_ssr.render_to_string), but without
    the markers used for hydration. Use this for pages that are not hydrated, e.g. emails.
    """
    return await _render(content, options, make_static_markup=True)


def render_to_string_sync(content: Any, options: RenderOptionsInput = None) -> SafeString:
    """Call [`render_to_string()`](api.md#django_async_ssr.render_to_string) from synchronous code."""
    return async_to_sync(render_to_string)(content, options)


def render_to_static_markup_sync(content: Any, options: RenderOptionsInput = None) -> SafeString:
    return async_to_sync(render_to_static_markup)(content, options)

# ruff: noqa: RUF022
"""Server-side rendering of component trees with asyncio and Suspense boundaries."""

from django_async_ssr.app_settings import SsrSettings
from django_async_ssr.deferred import Deferred, Lazy, lazy
from django_async_ssr.elements import (
    Component,
    ContextSlot,
    Element,
    Fragment,
    Suspense,
    create_context,
    h,
    use_context,
)
from django_async_ssr.errors import DeferredCancelledError, MissingBoundaryError, RenderError
from django_async_ssr.evaluator import render_sync
from django_async_ssr.render import (
    RenderOptions,
    render_to_static_markup,
    render_to_static_markup_sync,
    render_to_string,
    render_to_string_sync,
)
from django_async_ssr.renderer import AsyncRenderer

__all__ = [
    "AsyncRenderer",
    "Component",
    "ContextSlot",
    "create_context",
    "Deferred",
    "DeferredCancelledError",
    "Element",
    "Fragment",
    "h",
    "Lazy",
    "lazy",
    "MissingBoundaryError",
    "RenderError",
    "RenderOptions",
    "render_sync",
    "render_to_static_markup",
    "render_to_static_markup_sync",
    "render_to_string",
    "render_to_string_sync",
    "SsrSettings",
    "Suspense",
    "use_context",
]

from typing import NamedTuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from django_async_ssr.util.misc import default


class SsrSettings(NamedTuple):
    """
    Settings available for django-async-ssr.

    Set them in your Django settings as `ASYNC_SSR`, either as a dict or
    as an instance of this class:

    ```python
    from django_async_ssr import SsrSettings

    ASYNC_SSR = SsrSettings(
        fallback_fast=True,
    )
    ```
    """

    fallback_fast: bool | None = None
    """
    Default for the `fallback_fast` render option. Defaults to `False`.

    When enabled, as soon as it's certain that a `Suspense` boundary will render its fallback,
    the remaining content of the boundary is not rendered at all.

    This trades side effects of the skipped components (e.g. starting to fetch data)
    for an earlier end of the render.
    """

    separator: str | None = None
    """
    Markup inserted between two adjacent runs of text, so that the client sees them
    as two separate text nodes. Defaults to `"<!-- -->"`.

    Never inserted when rendering static markup.
    """

    root_attribute: str | None = None
    """
    Name of the attribute set on the top-level HTML elements of the output
    (except for static markup). Defaults to `"data-ssr-root"`.
    """


defaults = SsrSettings(
    fallback_fast=False,
    separator="<!-- -->",
    root_attribute="data-ssr-root",
)


class InternalSettings:
    # NOTE: Settings are read on every access, so that `override_settings` works.
    @property
    def _settings(self) -> SsrSettings:
        if not settings.configured:
            return SsrSettings()

        raw = getattr(settings, "ASYNC_SSR", None)
        if raw is None:
            return SsrSettings()
        if isinstance(raw, SsrSettings):
            return raw
        if not isinstance(raw, dict):
            raise ImproperlyConfigured(
                f"Setting ASYNC_SSR must be a dict or SsrSettings, got {type(raw).__name__}"
            )

        unknown_keys = set(raw) - set(SsrSettings._fields)
        if unknown_keys:
            raise ImproperlyConfigured(f"Unknown keys in ASYNC_SSR setting: {sorted(unknown_keys)}")
        return SsrSettings(**raw)

    @property
    def FALLBACK_FAST(self) -> bool:
        value = default(self._settings.fallback_fast, defaults.fallback_fast)
        if not isinstance(value, bool):
            raise ImproperlyConfigured(f"ASYNC_SSR.fallback_fast must be a bool, got {value!r}")
        return value

    @property
    def SEPARATOR(self) -> str:
        value = default(self._settings.separator, defaults.separator)
        if not isinstance(value, str):
            raise ImproperlyConfigured(f"ASYNC_SSR.separator must be a string, got {value!r}")
        return value

    @property
    def ROOT_ATTRIBUTE(self) -> str:
        value = default(self._settings.root_attribute, defaults.root_attribute)
        if not isinstance(value, str) or not value:
            raise ImproperlyConfigured(f"ASYNC_SSR.root_attribute must be a non-empty string, got {value!r}")
        return value


app_settings = InternalSettings()

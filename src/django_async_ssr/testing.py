import functools
import inspect
from collections.abc import Callable, Sequence
from typing import Any, TypeVar, overload

import pytest
from django.test import override_settings

from django_async_ssr.app_settings import SsrSettings

T = TypeVar("T")

# (argnames, argvalues, ids), passed to `pytest.mark.parametrize()`
Parametrize = tuple[Sequence[str], Sequence[Sequence[Any]], Sequence[str] | None]

PARAMETRIZE_FALLBACK_FAST: Parametrize = (
    ["ssr_settings"],
    [
        [{"fallback_fast": False}],
        [{"fallback_fast": True}],
    ],
    ["fallback_full", "fallback_fast"],
)


@overload
def ssr_test(_fn: T) -> T: ...


@overload
def ssr_test(
    *,
    django_settings: dict[str, Any] | None = None,
    ssr_settings: SsrSettings | dict[str, Any] | None = None,
    parametrize: Parametrize | None = None,
) -> Callable[[T], T]: ...


def ssr_test(
    _fn: Any = None,
    *,
    django_settings: dict[str, Any] | None = None,
    ssr_settings: SsrSettings | dict[str, Any] | None = None,
    parametrize: Parametrize | None = None,
) -> Any:
    """
    Decorator for tests that render with `django_async_ssr`.

    Can decorate a test function (sync or async), or a test class,
    in which case all its `test*` methods are decorated.

    - `django_settings` - Django settings to override for the duration of the test.
    - `ssr_settings` - Overrides for the `ASYNC_SSR` setting.
    - `parametrize` - Run the test once for each set of `ASYNC_SSR` overrides.
      The test receives the overrides as the `ssr_settings` argument.

    ```python
    @ssr_test(parametrize=PARAMETRIZE_FALLBACK_FAST)
    class TestSuspense:
        async def test_renders_fallback(self, ssr_settings):
            ...
    ```
    """

    def decorator(target: Any) -> Any:
        if isinstance(target, type):
            for name, attr in list(vars(target).items()):
                if name.startswith("test") and callable(attr):
                    setattr(target, name, decorator(attr))
            return target

        return _wrap_test(target, django_settings, ssr_settings, parametrize)

    if _fn is not None:
        return decorator(_fn)
    return decorator


def _wrap_test(
    fn: Callable[..., Any],
    django_settings: dict[str, Any] | None,
    ssr_settings: SsrSettings | dict[str, Any] | None,
    parametrize: Parametrize | None,
) -> Callable[..., Any]:
    def get_overrides(kwargs: dict[str, Any]) -> dict[str, Any]:
        overrides = dict(django_settings or {})

        merged_ssr_settings: dict[str, Any] = {}
        if ssr_settings is not None:
            merged_ssr_settings.update(_as_dict(ssr_settings))
        if parametrize is not None and kwargs.get("ssr_settings"):
            merged_ssr_settings.update(_as_dict(kwargs["ssr_settings"]))

        if merged_ssr_settings:
            overrides["ASYNC_SSR"] = merged_ssr_settings
        return overrides

    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with override_settings(**get_overrides(kwargs)):
                return await fn(*args, **kwargs)

        wrapper: Callable[..., Any] = async_wrapper
    else:

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with override_settings(**get_overrides(kwargs)):
                return fn(*args, **kwargs)

        wrapper = sync_wrapper

    if parametrize is not None:
        argnames, argvalues, ids = parametrize
        wrapper = pytest.mark.parametrize(argnames, argvalues, ids=ids)(wrapper)

    return wrapper


def _as_dict(value: SsrSettings | dict[str, Any]) -> dict[str, Any]:
    if isinstance(value, SsrSettings):
        return {key: val for key, val in value._asdict().items() if val is not None}
    return dict(value)

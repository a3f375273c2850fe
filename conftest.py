import asyncio
import inspect

import pytest


def pytest_configure(config):
    # Register common markers used across the repo without requiring external plugins.
    config.addinivalue_line(
        "markers", "asyncio: mark test as requiring asyncio event loop"
    )
    config.addinivalue_line(
        "markers", "slow: multi-megabyte end-to-end scenarios"
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """
    Provide a minimal asyncio runner for tests marked with @pytest.mark.asyncio when
    pytest-asyncio isn't available in the environment.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        # Only pass fixtures that correspond to the function signature.
        argnames = getattr(pyfuncitem, "_fixtureinfo", None)
        wanted = set(getattr(argnames, "argnames", []) or [])
        kwargs = {k: v for k, v in pyfuncitem.funcargs.items() if k in wanted}
        asyncio.run(test_func(**kwargs))
        return True
    return None

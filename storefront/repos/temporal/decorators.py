"""
Temporal decorators for turning repositories into activities and proxies.

`temporal_activity_registration` wraps every public async method of the
repository protocol a class implements as a Temporal activity named
"<prefix>.<method>". `temporal_workflow_proxy` generates the mirror image: a
class whose protocol methods call those activities from inside a workflow.

Both sides discover methods the same way, so an activity exists for every
proxy method and vice versa.
"""

import functools
import inspect
import logging
import typing
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import TypeAdapter
from temporalio import activity, workflow
from temporalio.common import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAIL_FAST_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_attempts=1,
    backoff_coefficient=1.0,
    maximum_interval=timedelta(seconds=1),
)


def _is_protocol_class(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False))


def protocol_methods(cls: type) -> Dict[str, Callable[..., Any]]:
    """
    Public async methods declared by the protocols in `cls`'s hierarchy.

    The returned functions are the protocol declarations, which carry the
    signatures and annotations both decorators rely on.
    """
    methods: Dict[str, Callable[..., Any]] = {}
    for base in cls.__mro__:
        if base is object or not _is_protocol_class(base):
            continue
        for name, member in base.__dict__.items():
            if name in methods or name.startswith("_"):
                continue
            if inspect.iscoroutinefunction(member):
                methods[name] = member

    if not methods:
        raise TypeError(
            f"{cls.__name__} implements no repository protocol with async "
            f"methods"
        )
    logger.debug(
        "Discovered protocol methods",
        extra={"class_name": cls.__name__, "methods": sorted(methods)},
    )
    return methods


def temporal_activity_registration(
    activity_prefix: str,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator registering a repository's protocol methods as
    activities.

    Example:
        @temporal_activity_registration("storefront.order_repo")
        class TemporalPostgreSQLOrderRepository(PostgreSQLOrderRepository):
            pass

        # get_order -> "storefront.order_repo.get_order", and so on.

    The worker registers the bound methods of an instance of the decorated
    class.
    """

    def decorator(cls: Type[T]) -> Type[T]:
        wrapped: List[str] = []
        for name, declared in protocol_methods(cls).items():
            implementation = getattr(cls, name)
            if implementation is declared:
                raise TypeError(
                    f"{cls.__name__} does not implement {name}"
                )

            def make_activity(
                method_name: str, impl: Callable[..., Any]
            ) -> Callable[..., Any]:
                @functools.wraps(impl)
                async def run_activity(self: Any, *args: Any) -> Any:
                    return await impl(self, *args)

                run_activity.__qualname__ = f"{cls.__name__}.{method_name}"
                return run_activity

            activity_name = f"{activity_prefix}.{name}"
            setattr(
                cls,
                name,
                activity.defn(name=activity_name)(
                    make_activity(name, implementation)
                ),
            )
            wrapped.append(name)

        logger.info(
            "Registered repository methods as activities",
            extra={
                "class_name": cls.__name__,
                "activity_prefix": activity_prefix,
                "wrapped_methods": wrapped,
            },
        )
        return cls

    return decorator


def temporal_workflow_proxy(
    activity_base: str,
    default_timeout_seconds: int = 30,
    retry_methods: Optional[List[str]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator implementing a protocol by calling activities.

    Each generated method runs the activity "<activity_base>.<method>" with
    `default_timeout_seconds` as its start-to-close timeout and converts the
    JSON result back into the declared return type. Methods named in
    `retry_methods` run once with no retries; the caller deals with the
    failure. Everything else gets Temporal's default retry policy.

    Only positional arguments are supported.
    """
    fail_fast = set(retry_methods or [])

    def decorator(cls: Type[T]) -> Type[T]:
        timeout = timedelta(seconds=default_timeout_seconds)
        methods = protocol_methods(cls)
        unknown = fail_fast - set(methods)
        if unknown:
            raise TypeError(
                f"{cls.__name__} has no protocol methods {sorted(unknown)}"
            )

        for name, declared in methods.items():

            def make_proxy(
                method_name: str, declaration: Callable[..., Any]
            ) -> Callable[..., Any]:
                return_type = typing.get_type_hints(declaration).get("return")
                adapter = (
                    TypeAdapter(return_type)
                    if return_type not in (None, type(None))
                    else None
                )
                activity_name = f"{activity_base}.{method_name}"
                retry_policy = (
                    FAIL_FAST_RETRY_POLICY if method_name in fail_fast else None
                )

                @functools.wraps(declaration)
                async def call_activity(
                    self: Any, *args: Any, **kwargs: Any
                ) -> Any:
                    if kwargs:
                        raise ValueError(
                            f"{method_name} must be called with positional "
                            f"arguments from a workflow"
                        )
                    logger.debug(
                        "Calling activity",
                        extra={
                            "activity_name": activity_name,
                            "args_count": len(args),
                        },
                    )
                    raw = await workflow.execute_activity(
                        activity_name,
                        args=list(args),
                        start_to_close_timeout=timeout,
                        retry_policy=retry_policy,
                    )
                    if adapter is None or raw is None:
                        return raw
                    return adapter.validate_python(raw)

                return call_activity

            setattr(cls, name, make_proxy(name, declared))

        def __init__(proxy_self: Any) -> None:
            proxy_self.activity_timeout = timeout

        setattr(cls, "__init__", __init__)

        logger.info(
            "Generated workflow proxy",
            extra={
                "class_name": cls.__name__,
                "activity_base": activity_base,
                "default_timeout_seconds": default_timeout_seconds,
                "retry_methods": sorted(fail_fast),
            },
        )
        return cls

    return decorator

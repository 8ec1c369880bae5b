"""Run several requests concurrently and fold their outcomes into one."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Sequence, Union

from .exceptions import CiosAggregateError
from .models import Outcome

RequestFactory = Callable[[], Awaitable[Any]]
FanoutMember = Union[RequestFactory, Awaitable[Any]]


async def _settle(member: FanoutMember) -> Outcome:
    try:
        awaitable = member if inspect.isawaitable(member) else member()
        result = await awaitable
    except Exception as exc:
        return Outcome.failure(exc)
    if isinstance(result, Outcome):
        return result
    return Outcome.success(result)


async def gather_outcomes(requests: Sequence[FanoutMember]) -> Outcome:
    """Run every member to completion; never fails fast.

    No failures yield the data list in input order, one failure yields that
    error unchanged, several yield a :class:`CiosAggregateError`.
    """
    outcomes = await asyncio.gather(*(_settle(member) for member in requests))
    errors = {index: outcome.error for index, outcome in enumerate(outcomes) if outcome.error is not None}
    if not errors:
        return Outcome.success([outcome.data for outcome in outcomes])
    if len(errors) == 1:
        return Outcome.failure(next(iter(errors.values())))
    return Outcome.failure(CiosAggregateError(errors))

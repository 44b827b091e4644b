from __future__ import annotations

from typing import Callable, Iterator, List, Tuple

import pytest

from fakes import EngineFactory, FakeEngine
from rtcbridge.config import NegotiationSettings
from rtcbridge.negotiation import Negotiator

MakeNegotiator = Callable[..., Tuple[Negotiator, EngineFactory]]


@pytest.fixture
def settings() -> NegotiationSettings:
    return NegotiationSettings(
        offer_timeout=1.0,
        description_timeout=0.3,
        description_poll_interval=0.01,
        gather_max_items=16,
        gather_quiescence=0.05,
    )


@pytest.fixture
def make_negotiator(settings: NegotiationSettings) -> Iterator[MakeNegotiator]:
    created: List[Negotiator] = []

    def _make(*engines: FakeEngine, **overrides) -> Tuple[Negotiator, EngineFactory]:
        factory = EngineFactory(*engines)
        negotiation_settings = settings
        if overrides:
            negotiation_settings = NegotiationSettings(**{**vars(settings), **overrides})
        negotiator = Negotiator(factory, settings=negotiation_settings)
        created.append(negotiator)
        return negotiator, factory

    yield _make

    for negotiator in created:
        negotiator.shutdown()

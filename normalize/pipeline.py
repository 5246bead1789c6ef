from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import datetime
from itertools import chain

from geo.region import BoundingBox
from normalize.models import CandidateRecord, Incident, SourceClass
from normalize.normalize import drop_duplicate_ids, normalize
from normalize.temporal import DEFAULT_POLICIES, TemporalPolicy, tag_status


def run_pipeline(
    batches: Iterable[Iterable[CandidateRecord]],
    *,
    now: datetime,
    region: BoundingBox,
    policies: Mapping[SourceClass, TemporalPolicy] = DEFAULT_POLICIES,
    counter: Counter[str] | None = None,
) -> list[Incident]:
    """All candidate records of one tick in, all displayable incidents out.

    Pure: the same batches and ``now`` always give an equal list. Ids are
    de-duplicated after expired records are dropped, so a live record wins
    over an earlier expired one with the same id.
    """
    incidents = normalize(
        chain.from_iterable(batches), region=region, counter=counter, dedupe=False
    )
    return drop_duplicate_ids(tag_status(incidents, now, policies), counter)

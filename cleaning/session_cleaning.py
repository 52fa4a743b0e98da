from __future__ import annotations

import logging

from cleaning.outliers import OutlierOptions, TrialVerdict, clean_reaction_times, exclusion_counts
from storage.base import TrialStore

logger = logging.getLogger(__name__)


def clean_session(
    store: TrialStore,
    session_id: str,
    options: OutlierOptions | None = None,
) -> list[TrialVerdict]:
    """Clean a session's test trials and write the verdicts back through the store.

    Practice trials are never part of the batch. Without explicit options the
    session's configured method and the paradigm's RT bounds are used. Only the
    exclusion fields are written; raw trial data is untouched.
    """
    session = store.get_session(session_id)
    if options is None:
        options = OutlierOptions.for_paradigm(
            session.configuration.paradigm, session.configuration.outlier_method
        )
    batch = [t for t in store.list_trials(session_id) if not t.is_practice]
    verdicts = clean_reaction_times(batch, options)

    for trial, verdict in zip(batch, verdicts):
        if trial.excluded_flag == verdict.excluded and trial.exclusion_reason == verdict.reason:
            continue
        store.update_trial(trial.trial_id, excluded_flag=verdict.excluded, exclusion_reason=verdict.reason)

    counts = exclusion_counts(verdicts)
    logger.info(
        "Session %s cleaned with %s: %d of %d test trials excluded "
        "(bounds=%d, min/max=%d, statistical=%d)",
        session_id,
        options.method.value,
        counts["total"],
        len(batch),
        counts["bounds"],
        counts["min_max"],
        counts["statistical"],
    )
    return verdicts

"""tournament_sync.field_sync

Links a surviving Website tournament to its Portal application.

Only the identifying fields are written: source_application_id and
managed_by_source.  A record that already carries a source id is left
untouched, which makes re-running a pass a no-op.  Descriptive fields
(name, dates) are never overwritten in either direction.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from tournament_sync.models import TournamentApplication, TournamentRecord
from tournament_sync.stores import WebsiteStore

log = logging.getLogger(__name__)


def sync_fields(
    store: WebsiteStore,
    survivor: TournamentRecord,
    application: TournamentApplication,
) -> tuple[TournamentRecord, bool]:
    """Return (updated_record, changed).

    Raises:
        LocalStoreWriteFailure: the update itself failed.
    """
    if survivor.source_application_id:
        return survivor, False
    if not store.link_source(survivor.id, application.application_id):
        log.warning("Tournament %s vanished before it could be linked", survivor.label())
        return survivor, False
    updated = replace(
        survivor,
        source_application_id=application.application_id,
        managed_by_source=True,
    )
    return updated, True

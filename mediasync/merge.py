"""
Merge an inbound item into its canonical record.

Rules:
- Source links: only the syncing client's link is upserted
- External identifiers: upserted per source, never removed
- Title, release info and payload: replaced by the inbound values
- Hierarchy fields: kept from the existing record (the hierarchy linker
  is the only writer)
"""

from models.base import MediaKind
from schemas.media import InboundItem, CanonicalItem
from core.exceptions import MergeError, UnattributableItemError

HIERARCHY_FIELDS = {
    MediaKind.SERIES: ("seasons",),
    MediaKind.SEASON: ("series_id", "episode_ids"),
    MediaKind.EPISODE: ("series_id", "season_id", "season_number"),
}

# Fields a freshly created record must not take from a provider, since the
# provider's values are its own ids
RESET_ON_CREATE = {
    MediaKind.SERIES: {"seasons": list},
    MediaKind.SEASON: {"series_id": lambda: None, "episode_ids": list},
    MediaKind.EPISODE: {"series_id": lambda: None, "season_id": lambda: None},
}


def _client_item_id(inbound: InboundItem, client_id: int) -> str:
    client_item_id = inbound.client_item_id(client_id)
    if not client_item_id:
        raise UnattributableItemError(
            "Inbound item has no identifier for the syncing client",
            context={"client_id": client_id, "kind": inbound.kind.value, "title": inbound.title}
        )
    return client_item_id


def merge_items(existing: CanonicalItem, inbound: InboundItem, client_id: int) -> CanonicalItem:
    """
    Produce the updated canonical record. Neither argument is modified.

    Raises:
        MergeError: If the two records are of different kinds
    """
    if existing.kind != inbound.kind:
        raise MergeError(
            "Cannot merge items of different kinds",
            context={
                "item_id": existing.id,
                "existing_kind": existing.kind.value,
                "inbound_kind": inbound.kind.value
            }
        )

    merged = existing.copy(deep=True)
    merged.source_links[client_id] = _client_item_id(inbound, client_id)
    merged.external_ids.update(inbound.external_ids)

    merged.title = inbound.title
    merged.release_year = inbound.release_year
    merged.release_date = inbound.release_date

    payload = inbound.payload.copy(deep=True)
    for field in HIERARCHY_FIELDS.get(existing.kind, ()):
        setattr(payload, field, getattr(merged.payload, field))
    merged.payload = payload

    return merged


def new_item_from_inbound(inbound: InboundItem, client_id: int) -> CanonicalItem:
    """Build an unsaved canonical record carrying only the syncing client's link"""
    payload = inbound.payload.copy(deep=True)
    for field, default in RESET_ON_CREATE.get(inbound.kind, {}).items():
        setattr(payload, field, default())

    return CanonicalItem(
        kind=inbound.kind,
        title=inbound.title,
        release_year=inbound.release_year,
        release_date=inbound.release_date,
        source_links={client_id: _client_item_id(inbound, client_id)},
        external_ids=dict(inbound.external_ids),
        payload=payload,
    )

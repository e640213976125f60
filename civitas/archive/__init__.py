"""
Civitas — Archive
==================
Generic entity archival: archive, restore and query archival state for
requests, organizations and accounts without an archived column on their
own tables.

Modules: kinds, snapshots, filters, store, service.
"""

from civitas.archive.kinds import EntityKind, parse_entity_kind

__all__ = ["EntityKind", "parse_entity_kind"]

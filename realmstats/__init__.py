"""
RealmStats — Kingdom Snapshot Tracker
======================================
Ingests periodic spreadsheet exports of a kingdom's player roster, keeps a
current-state registry per player, records name and alliance history, and
infers which players have left the realm.  A FastAPI service feeds the
dashboard.

Package layout::

    realmstats/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Spreadsheet columns, tuning defaults, UTC helpers
    ├── errors.py          # ServiceError taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (7 tables)
    ├── engine/
    │   ├── changes.py     # Name / alliance change detection
    │   └── realm.py       # Left-realm rules
    ├── services/
    │   ├── upload_service.py        # Workbook validation + parsing
    │   ├── snapshot_store.py        # Snapshot + batched row persistence
    │   ├── player_registry.py       # Current-state player records
    │   ├── realm_status_service.py  # Left-realm sweep
    │   ├── ingestion_service.py     # Upload → snapshot pipeline
    │   ├── season_service.py        # Season management
    │   ├── query_service.py         # Dashboard reads
    │   └── log_buffer.py            # In-memory log tail
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Caller identity
        └── routes/        # Upload, admin and read endpoints
"""

__version__ = "0.1.0"

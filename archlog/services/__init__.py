"""Pipeline services: store, governor, extraction, orchestration, export."""

"""Incremental fetch of repository history: cursors and the artifact fetcher."""

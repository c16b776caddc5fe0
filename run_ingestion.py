"""
Main entry point for building the stop cache.

Runs the full ingestion pipeline against the configured feed directory.
"""

from gtfs_cache.ingest.orchestrator import main


if __name__ == "__main__":
    main()

"""Ingestion: CSV adapters and the transfer-log seeder."""

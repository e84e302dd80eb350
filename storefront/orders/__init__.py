"""Order pipeline: checkout ingestion, subscription sync and refunds."""

"""Site crawling: URL filters, the per-site crawler and the run orchestrator."""

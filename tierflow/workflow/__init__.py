"""Start, end and reopen pipelines."""

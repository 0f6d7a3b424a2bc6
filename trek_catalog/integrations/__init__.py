"""
External metadata provider integrations (TMDb).

New provider clients should live under this namespace so they remain
decoupled from the pipeline stages (`ingestion/`) and CLI scripts (`scripts/`).
"""

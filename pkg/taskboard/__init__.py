# Taskboard: task tracking, AI task extraction, and reporting
#
# Components:
#   errors.py     - Error taxonomy shared by store, pipeline and HTTP layer
#   config.py     - YAML + environment configuration
#   schema.py     - Data model (Task, Location, Report, AIMessage, CandidateTask)
#   store.py      - SQLite persistence layer with lifecycle invariants
#   rules.py      - Offline keyword/date rules for task extraction
#   providers.py  - Text-completion providers (OpenAI-compatible, offline rules)
#   extraction.py - Prompt building and provider call
#   validator.py  - Model output repair and per-task validation
#   reconcile.py  - Candidate tasks -> persisted tasks
#   stats.py      - Task statistics and daily/weekly reports
#   client.py     - HTTP client for the Taskboard API

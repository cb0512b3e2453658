# ==============================================
# recordflow — record transfer & schema inference
# ==============================================
#
# Package Structure:
#
# recordflow/
# ├── pipeline/          # Bounded-queue asyncio stages (backpressure)
# ├── batching/          # Object (count + time) and byte (size + separator) batching
# ├── normalization/     # Value type discovery and conversion
# ├── analysis/          # Schema / statistics inference, deconfliction
# ├── content_detector/  # Sensitive content labels (regex + property name)
# ├── sources/           # Record sources (in-memory, HTTP JSON lines)
# ├── sinks/             # Sink contract, state model, concrete sinks
# ├── storage/           # Database clients used by the MySQL / MongoDB sinks
# ├── persistence/       # Sink state files on disk
# ├── fetch/             # Fetch orchestrator (source → per-schema writers → commit)
# ├── config.py          # Configuration management
# ├── errors.py          # Error taxonomy
# ├── job_context.py     # Operator output / prompting
# ├── run_context.py     # Per-run context (random source, once-only notices)
# └── cli.py             # Command line entry point
#
# ==============================================

__version__ = "0.1.0"

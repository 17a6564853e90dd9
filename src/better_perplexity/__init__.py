"""Better Perplexity - answers questions from cited, optionally fact-checked web evidence.

A question is planned into search intents, evidence is fetched in parallel
under a time budget, and an answer is generated with (Source[n]) citations.
In reliability mode the draft's factual claims are scored against the
evidence before the final answer is written.

Components:
- agents: planner, responder, verifier
- retrieval: search, fetch, extract, researcher (bounded fetch pool)
- pipeline: orchestrator and progress events
- store: SQLite / in-memory TTL cache
- llm: OpenAI-compatible generation client
- mlops: MLflow tracing
"""

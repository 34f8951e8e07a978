"""Application services (use-case orchestration, framework agnostic)."""

"""
Grant discovery and pursuit tracking.

- `pipeline.search`: fan-out search over federal and state grant sources
- `matching`: profile match scoring, ranking and filtering
- `modules.pursuits`: tracked grants with stage history, tasks and budgets
- `ai`: provider-agnostic LLM dispatch and the features built on it
"""

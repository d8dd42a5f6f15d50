"""Service layer: LLM invokers, dispatch core, content sources, progress sinks."""

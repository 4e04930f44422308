from agentwire.core.config import OrchestratorConfig

__all__ = ["OrchestratorConfig"]

"""Training session state machine."""
from .session_controller import TrainingSessionController

__all__ = ["TrainingSessionController"]

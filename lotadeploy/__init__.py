"""lotadeploy — build, test and deploy orchestrator for the lotabots workspace."""

__version__ = "0.1.0"

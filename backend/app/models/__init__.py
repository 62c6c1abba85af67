from app.models.deletion_request import DeletionRequest

__all__ = ["DeletionRequest"]

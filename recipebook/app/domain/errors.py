from __future__ import annotations


class InfrastructureError(Exception):
    pass


class StorageError(InfrastructureError):
    pass


class StorageUploadError(StorageError):
    def __init__(self, object_key: str, reason: str = "Upload failed"):
        super().__init__(f"Failed to upload {object_key}: {reason}")
        self.object_key = object_key
        self.reason = reason


class RecipeRepositoryError(InfrastructureError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Recipe repository error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class RecipeNotFoundError(InfrastructureError):
    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe not found: {recipe_id}")
        self.recipe_id = recipe_id

class ServiceError(Exception):
    pass


class InvalidInputError(ServiceError):
    pass


class InvalidURLError(InvalidInputError):
    pass


class DuplicateRecipeError(ServiceError):
    def __init__(self, existing_id: str, existing_title: str):
        super().__init__(f"Recipe already saved: {existing_id}")
        self.existing_id = existing_id
        self.existing_title = existing_title


class ContentUnreachableError(ServiceError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"Could not reach content at {url}: {reason}")
        self.url = url
        self.reason = reason


class FrameExtractionError(ServiceError):
    pass


class InferenceError(ServiceError):
    pass


class RateLimitedError(InferenceError):
    pass


class NoRecipeFoundError(ServiceError):
    pass


class PersistenceError(ServiceError):
    pass
